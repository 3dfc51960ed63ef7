from datetime import datetime

from pydantic import BaseModel


class TimetableEntryOut(BaseModel):
    id: str
    course_id: str
    room_id: str
    lecturer_id: str
    day: str
    time_slot_id: str
    has_conflict: bool
    conflict_type: str | None = None
    academic_year: str
    semester: int
    generation_job_id: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class TermTimetableOut(BaseModel):
    academic_year: str
    semester: int
    entries: list[TimetableEntryOut]
