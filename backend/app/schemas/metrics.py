from datetime import datetime

from pydantic import BaseModel


class MethodPerformance(BaseModel):
    success_rate: float = 0.0
    avg_duration: float = 0.0
    avg_conflicts: float = 0.0
    avg_entries: float = 0.0
    total_attempts: int = 0


class PerformanceSummary(BaseModel):
    ai: MethodPerformance
    genetic: MethodPerformance


class GenerationFailureOut(BaseModel):
    job_id: str
    method: str
    error_message: str | None = None
    academic_year: str | None = None
    semester: int | None = None
    timestamp: datetime | None = None


class MethodRecommendation(BaseModel):
    academic_year: str | None = None
    semester: int | None = None
    recommendation: str
