from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.conflict import ConflictType
from app.schemas.conflict import (
    ConflictOut,
    ConflictReport,
    DetectConflictsRequest,
    ResolveConflictRequest,
    SuggestAlternativesRequest,
    SuggestAlternativesResponse,
)
from app.services.conflict_detection import list_term_conflicts, resolve_conflict, sync_term_conflicts
from app.services.conflict_resolver import ConflictResolver, entry_context_from_row

router = APIRouter()


def _report(academic_year: str, semester: int, conflicts: list) -> ConflictReport:
    items = [ConflictOut.model_validate(item) for item in conflicts]
    return ConflictReport(
        academic_year=academic_year,
        semester=semester,
        conflicts=items,
        hard_conflicts=sum(1 for item in items if item.conflict_type != ConflictType.availability),
        availability_conflicts=sum(1 for item in items if item.conflict_type == ConflictType.availability),
    )


@router.get("", response_model=ConflictReport)
def list_conflicts(
    academic_year: str = Query(min_length=1, max_length=20),
    semester: int = Query(ge=1, le=20),
    include_resolved: bool = True,
    db: Session = Depends(get_db),
) -> ConflictReport:
    conflicts = list_term_conflicts(db, academic_year, semester, include_resolved=include_resolved)
    return _report(academic_year, semester, conflicts)


@router.post("/detect", response_model=ConflictReport)
def detect_term_conflicts(payload: DetectConflictsRequest, db: Session = Depends(get_db)) -> ConflictReport:
    conflicts = sync_term_conflicts(db, payload.academic_year, payload.semester)
    db.commit()
    return _report(payload.academic_year, payload.semester, conflicts)


@router.post("/alternatives", response_model=SuggestAlternativesResponse)
def suggest_alternatives(
    payload: SuggestAlternativesRequest,
    db: Session = Depends(get_db),
) -> SuggestAlternativesResponse:
    context = entry_context_from_row(db, payload.entry_id)
    resolver = ConflictResolver.from_session(db, days=payload.days)
    return SuggestAlternativesResponse(
        entry_id=context.entry_id,
        suggestions=resolver.suggest_alternatives(context, payload.conflicts),
    )


@router.post("/{conflict_id}/resolve", response_model=ConflictOut)
def mark_conflict_resolved(
    conflict_id: str,
    payload: ResolveConflictRequest,
    db: Session = Depends(get_db),
) -> ConflictOut:
    return ConflictOut.model_validate(resolve_conflict(db, conflict_id, payload.resolution_notes))
