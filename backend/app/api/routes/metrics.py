from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.metrics import GenerationFailureOut, MethodRecommendation, PerformanceSummary
from app.services.monitoring import RECENT_FAILURE_LIMIT, performance_summary, recent_failures, recommend_method

router = APIRouter()


@router.get("/performance", response_model=PerformanceSummary)
def get_performance(db: Session = Depends(get_db)) -> PerformanceSummary:
    return performance_summary(db)


@router.get("/failures", response_model=list[GenerationFailureOut])
def get_recent_failures(
    limit: int = Query(default=RECENT_FAILURE_LIMIT, ge=1, le=100),
    db: Session = Depends(get_db),
) -> list[GenerationFailureOut]:
    return recent_failures(db, limit=limit)


@router.get("/recommendation", response_model=MethodRecommendation)
def get_recommendation(
    academic_year: str | None = Query(default=None, max_length=20),
    semester: int | None = Query(default=None, ge=1, le=20),
    constraints_count: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> MethodRecommendation:
    recommendation = recommend_method(db, academic_year, semester, constraints_count)
    return MethodRecommendation(academic_year=academic_year, semester=semester, recommendation=recommendation)
