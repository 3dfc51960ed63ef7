from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Float, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class TimetableGenerationSettings(Base):
    __tablename__ = "timetable_generation_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    population_size: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    generations: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    mutation_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.05)
    crossover_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.85)
    elite_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    tournament_size: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    stagnation_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    initial_bias: Mapped[float] = mapped_column(Float, nullable=False, default=0.8)
    evaluation_workers: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    strict_availability: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_lecturer_sessions_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    underutilization_ratio: Mapped[float] = mapped_column(Float, nullable=False, default=0.4)
    random_seed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    objective_weights: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class GenerationJobStatus(str, Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class GenerationJob(Base):
    __tablename__ = "generation_jobs"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    academic_year: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    semester: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    status: Mapped[GenerationJobStatus] = mapped_column(
        SAEnum(GenerationJobStatus, name="generation_job_status"),
        nullable=False,
        default=GenerationJobStatus.queued,
        index=True,
    )
    method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    entries_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
