from datetime import datetime

from pydantic import BaseModel, Field

from app.models.conflict import ConflictType
from app.schemas.common import DayValue, Identifier


class ConflictOut(BaseModel):
    id: str
    entry1_id: str
    entry2_id: str | None = None
    conflict_type: ConflictType
    description: str
    resolved: bool
    resolution_notes: str | None = None
    academic_year: str
    semester: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ConflictReport(BaseModel):
    academic_year: str
    semester: int
    conflicts: list[ConflictOut]
    hard_conflicts: int
    availability_conflicts: int


class DetectConflictsRequest(BaseModel):
    academic_year: str = Field(min_length=1, max_length=20)
    semester: int = Field(ge=1, le=20)


class ResolveConflictRequest(BaseModel):
    resolution_notes: str | None = Field(default=None, max_length=2000)


class SuggestAlternativesRequest(BaseModel):
    entry_id: Identifier = Field(min_length=1, max_length=36)
    conflicts: list[dict] = Field(default_factory=list)
    days: list[DayValue] | None = None


class AlternativeSuggestion(BaseModel):
    day: str
    time_slot_id: str
    room_id: str
    score: float
    reason: str


class SuggestAlternativesResponse(BaseModel):
    entry_id: str
    suggestions: list[AlternativeSuggestion]


class ResolverWeights(BaseModel):
    lecturer_available: float = Field(default=30, ge=0)
    capacity_fit: float = Field(default=20, ge=0)
    # (max minutes between start times, points); first matching tier wins.
    proximity_tiers: list[tuple[int, float]] = Field(default_factory=lambda: [(60, 15), (120, 10), (180, 5)])
    same_day: float = Field(default=10, ge=0)
    same_building: float = Field(default=5, ge=0)
    optimal_threshold: float = 60
    available_threshold: float = 30
    capacity_threshold: float = 20
    max_suggestions: int = Field(default=5, ge=1, le=50)
