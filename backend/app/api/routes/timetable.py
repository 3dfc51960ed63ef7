from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.timetable_entry import TimetableEntry
from app.schemas.timetable import TermTimetableOut, TimetableEntryOut

router = APIRouter()


@router.get("", response_model=TermTimetableOut)
def get_term_timetable(
    academic_year: str = Query(min_length=1, max_length=20),
    semester: int = Query(ge=1, le=20),
    db: Session = Depends(get_db),
) -> TermTimetableOut:
    entries = db.execute(
        select(TimetableEntry)
        .where(TimetableEntry.academic_year == academic_year, TimetableEntry.semester == semester)
        .order_by(TimetableEntry.day, TimetableEntry.time_slot_id, TimetableEntry.room_id)
    ).scalars()
    return TermTimetableOut(
        academic_year=academic_year,
        semester=semester,
        entries=[TimetableEntryOut.model_validate(item) for item in entries],
    )
