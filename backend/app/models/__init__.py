from app.models.conflict import Conflict, ConflictType  # noqa: F401
from app.models.course import Course  # noqa: F401
from app.models.generation_metric import TimetableGenerationMetric  # noqa: F401
from app.models.lecturer import Lecturer, LecturerAvailability  # noqa: F401
from app.models.room import Room  # noqa: F401
from app.models.time_slot import TimeSlot  # noqa: F401
from app.models.timetable_entry import TimetableEntry  # noqa: F401
from app.models.timetable_generation import (  # noqa: F401
    GenerationJob,
    GenerationJobStatus,
    TimetableGenerationSettings,
)
