from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.timetable_generation import GenerationJobStatus
from app.schemas.common import DayValue, Identifier
from app.schemas.course import CourseSectionPayload
from app.schemas.lecturer import LecturerPayload
from app.schemas.room import RoomPayload
from app.schemas.time_slot import TimeSlotPayload

GenerationMethod = Literal["ai", "genetic"]


class ObjectiveWeights(BaseModel):
    hard_conflict: int = Field(default=1000, ge=1, le=1_000_000)
    capacity: int = Field(default=800, ge=1, le=1_000_000)
    availability: int = Field(default=40, ge=0, le=1_000_000)
    daily_overload: int = Field(default=15, ge=0, le=100_000)
    distribution: int = Field(default=5, ge=0, le=10_000)
    underutilization: int = Field(default=3, ge=0, le=10_000)


class GenerationSettingsBase(BaseModel):
    population_size: int = Field(default=100, ge=10, le=2000)
    generations: int = Field(default=200, ge=1, le=5000)
    mutation_rate: float = Field(default=0.05, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.85, ge=0.0, le=1.0)
    elite_count: int = Field(default=1, ge=1, le=100)
    tournament_size: int = Field(default=4, ge=2, le=50)
    stagnation_limit: int = Field(default=25, ge=1, le=1000)
    initial_bias: float = Field(default=0.8, ge=0.0, le=1.0)
    evaluation_workers: int = Field(default=1, ge=1, le=32)
    strict_availability: bool = False
    max_lecturer_sessions_per_day: int = Field(default=4, ge=1, le=20)
    # A fitting room is underused when enrollment is below this share of its capacity.
    underutilization_ratio: float = Field(default=0.4, ge=0.0, le=1.0)
    random_seed: int | None = Field(default=None, ge=0, le=2_000_000_000)
    objective_weights: ObjectiveWeights = Field(default_factory=ObjectiveWeights)

    @model_validator(mode="after")
    def validate_relationships(self) -> "GenerationSettingsBase":
        if self.elite_count >= self.population_size:
            raise ValueError("elite_count must be less than population_size")
        if self.tournament_size > self.population_size:
            raise ValueError("tournament_size cannot exceed population_size")
        return self


class GenerationSettingsUpdate(GenerationSettingsBase):
    pass


class GenerationSettingsOut(GenerationSettingsBase):
    id: int


class GenerateTimetableRequest(BaseModel):
    academic_year: str | None = Field(default=None, max_length=20)
    semester: int | None = Field(default=None, ge=1, le=20)
    courses: list[CourseSectionPayload] = Field(default_factory=list)
    rooms: list[RoomPayload] = Field(default_factory=list)
    lecturers: list[LecturerPayload] = Field(default_factory=list)
    constraints: list[Any] = Field(default_factory=list)
    time_slots: list[TimeSlotPayload] | None = None
    days: list[DayValue] | None = None
    settings_override: GenerationSettingsBase | None = None

    @field_validator("courses", "rooms", "lecturers", "constraints", mode="before")
    @classmethod
    def missing_list_is_empty(cls, value: Any) -> Any:
        if value is None:
            return []
        return value

    @field_validator("academic_year", mode="before")
    @classmethod
    def blank_year_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ScheduledEntry(BaseModel):
    course_id: Identifier = Field(min_length=1, max_length=36)
    room_id: Identifier = Field(min_length=1, max_length=36)
    lecturer_id: Identifier = Field(min_length=1, max_length=36)
    day: DayValue
    time_slot_id: Identifier = Field(min_length=1, max_length=36)


class SkippedEntry(BaseModel):
    entry: Any
    error: str


class GenerationResult(BaseModel):
    job_id: str
    success: bool
    entries_generated: int = 0
    method: GenerationMethod | None = None
    duration_seconds: float = 0.0
    error: str | None = None
    conflicts_count: int = 0
    cancelled: bool = False
    academic_year: str | None = None
    semester: int | None = None
    skipped_entries: list[SkippedEntry] = Field(default_factory=list)


class GenerationJobOut(BaseModel):
    job_id: str
    status: GenerationJobStatus
    academic_year: str | None = None
    semester: int | None = None
    method: str | None = None
    entries_generated: int = 0
    error_message: str | None = None
    result: dict = Field(default_factory=dict)
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"from_attributes": True}
