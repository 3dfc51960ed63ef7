from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.generation_metric import TimetableGenerationMetric
from app.schemas.metrics import GenerationFailureOut, MethodPerformance, PerformanceSummary

logger = logging.getLogger(__name__)

RECENT_FAILURE_LIMIT = 10
MIN_ATTEMPTS_FOR_COMPARISON = 10
SUCCESS_RATE_MARGIN = 20.0
LARGE_CONSTRAINT_SET = 50
TERM_FAILURE_THRESHOLD = 2


def record_generation_attempt(
    session_factory: Callable[[], Session],
    job_id: str,
    *,
    method: str | None,
    duration_seconds: float,
    success: bool,
    entries_generated: int = 0,
    conflicts_count: int = 0,
    error_message: str | None = None,
    academic_year: str | None = None,
    semester: int | None = None,
) -> TimetableGenerationMetric | None:
    """Insert one metric row in its own session; storage errors are logged, never raised."""
    metric = TimetableGenerationMetric(
        job_id=job_id,
        method=method or "unknown",
        duration_seconds=round(float(duration_seconds), 3),
        success=success,
        entries_generated=entries_generated,
        conflicts_count=conflicts_count,
        error_message=error_message,
        academic_year=academic_year,
        semester=semester,
    )
    try:
        with session_factory() as db:
            db.add(metric)
            db.commit()
    except SQLAlchemyError as exc:
        logger.error("Failed to record generation metrics for job %s: %s", job_id, exc)
        return None
    return metric


def performance_summary(db: Session) -> PerformanceSummary:
    rows = db.execute(
        select(
            TimetableGenerationMetric.method,
            func.count().label("total_attempts"),
            func.sum(case((TimetableGenerationMetric.success.is_(True), 1), else_=0)).label("successes"),
            func.avg(TimetableGenerationMetric.duration_seconds).label("avg_duration"),
            func.avg(TimetableGenerationMetric.conflicts_count).label("avg_conflicts"),
            func.avg(TimetableGenerationMetric.entries_generated).label("avg_entries"),
        ).group_by(TimetableGenerationMetric.method)
    ).all()

    by_method: dict[str, MethodPerformance] = {}
    for row in rows:
        total = int(row.total_attempts or 0)
        by_method[row.method] = MethodPerformance(
            success_rate=round((int(row.successes or 0) / total) * 100, 2) if total else 0.0,
            avg_duration=round(float(row.avg_duration or 0), 2),
            avg_conflicts=round(float(row.avg_conflicts or 0), 2),
            avg_entries=round(float(row.avg_entries or 0), 2),
            total_attempts=total,
        )
    return PerformanceSummary(
        ai=by_method.get("ai", MethodPerformance()),
        genetic=by_method.get("genetic", MethodPerformance()),
    )


def recent_failures(db: Session, limit: int = RECENT_FAILURE_LIMIT) -> list[GenerationFailureOut]:
    metrics = db.execute(
        select(TimetableGenerationMetric)
        .where(TimetableGenerationMetric.success.is_(False))
        .order_by(TimetableGenerationMetric.created_at.desc(), TimetableGenerationMetric.id.desc())
        .limit(limit)
    ).scalars()
    return [
        GenerationFailureOut(
            job_id=item.job_id,
            method=item.method,
            error_message=item.error_message,
            academic_year=item.academic_year,
            semester=item.semester,
            timestamp=item.created_at,
        )
        for item in metrics
    ]


def recommend_method(
    db: Session,
    academic_year: str | None,
    semester: int | None,
    constraint_count: int = 0,
) -> str:
    summary = performance_summary(db)
    recommendation = "ai"

    if (
        summary.ai.total_attempts > MIN_ATTEMPTS_FOR_COMPARISON
        and summary.genetic.total_attempts > MIN_ATTEMPTS_FOR_COMPARISON
        and summary.ai.success_rate < summary.genetic.success_rate - SUCCESS_RATE_MARGIN
    ):
        recommendation = "genetic"

    if constraint_count > LARGE_CONSTRAINT_SET:
        recommendation = "genetic"

    term_failures = [
        item
        for item in recent_failures(db)
        if item.method == "ai" and item.academic_year == academic_year and item.semester == semester
    ]
    if len(term_failures) >= TERM_FAILURE_THRESHOLD:
        recommendation = "genetic"

    logger.info(
        "Method recommendation for %s semester %s: %s (ai success %.1f%% over %d, genetic %.1f%% over %d)",
        academic_year,
        semester,
        recommendation,
        summary.ai.success_rate,
        summary.ai.total_attempts,
        summary.genetic.success_rate,
        summary.genetic.total_attempts,
    )
    return recommendation
