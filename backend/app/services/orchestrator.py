from __future__ import annotations

import logging
import threading
import zlib
from collections.abc import Callable, Sequence
from time import perf_counter
from typing import Any
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    AppError,
    EmptyScheduleError,
    GenerationCancelledError,
    GenerationValidationError,
    ReferenceDataError,
)
from app.models.conflict import Conflict
from app.models.lecturer import Lecturer
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import TimetableEntry
from app.schemas.generator import (
    GenerateTimetableRequest,
    GenerationSettingsBase,
    GenerationResult,
    ScheduledEntry,
    SkippedEntry,
)
from app.schemas.lecturer import LecturerPayload
from app.schemas.time_slot import TimeSlotPayload
from app.services.conflict_detection import sync_term_conflicts
from app.services.events import (
    GENERATION_COMPLETED,
    GENERATION_FAILED,
    REMOTE_OPTIMIZER_FAILED,
    GenerationEventHub,
    event_hub as default_event_hub,
)
from app.services.generation_settings import load_generation_settings
from app.services.genetic_solver import GeneticScheduler
from app.services.monitoring import recommend_method, record_generation_attempt
from app.services.remote_optimizer import REQUIRED_ENTRY_FIELDS, RemoteOptimizerClient, is_complete_entry

logger = logging.getLogger(__name__)

REFERENCE_FIELDS = ("course_id", "room_id", "lecturer_id", "time_slot_id")


def new_job_id() -> str:
    return f"timetable_{uuid4().hex}"


class TermLockRegistry:
    """One lock per (academic_year, semester); runs for different terms never contend."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, int], threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, academic_year: str, semester: int) -> threading.Lock:
        key = (academic_year, semester)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


term_locks = TermLockRegistry()


def term_lock_key(academic_year: str, semester: int) -> int:
    return zlib.crc32(f"timetable:{academic_year}:{semester}".encode("utf-8"))


def acquire_term_transaction_lock(db: Session, academic_year: str, semester: int) -> None:
    """Serialize same-term replacements across processes; released when the transaction ends."""
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": term_lock_key(academic_year, semester)})


class PersistOutcome:
    def __init__(self, saved: int, deleted: int, skipped: list[SkippedEntry], conflicts_count: int) -> None:
        self.saved = saved
        self.deleted = deleted
        self.skipped = skipped
        self.conflicts_count = conflicts_count


class TimetableGenerationOrchestrator:
    """Runs one generation: remote optimizer first, genetic solver as fallback, then an
    atomic replace of the term's entries and one metric row.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        remote_client: RemoteOptimizerClient | None = None,
        app_settings: Settings | None = None,
        events: GenerationEventHub | None = None,
        locks: TermLockRegistry | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.app_settings = app_settings or get_settings()
        self.events = events or default_event_hub
        self.remote_client = remote_client or RemoteOptimizerClient(
            self.app_settings.remote_optimizer_url,
            timeout=self.app_settings.remote_optimizer_timeout_seconds,
            events=self.events,
        )
        self.locks = locks or term_locks

    @staticmethod
    def _validate(request: GenerateTimetableRequest) -> tuple[str, int]:
        missing = [
            name for name in ("academic_year", "semester") if getattr(request, name) in (None, "")
        ]
        if missing:
            raise GenerationValidationError(
                "Missing required academic year or semester",
                details={"missing": missing},
            )
        return request.academic_year, request.semester

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None, job_id: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError(job_id)

    def _solver_settings(self, request: GenerateTimetableRequest) -> GenerationSettingsBase:
        if request.settings_override is not None:
            return request.settings_override
        with self.session_factory() as db:
            stored = load_generation_settings(db)
        return GenerationSettingsBase.model_validate(stored.model_dump(exclude={"id"}))

    def _time_slots(self, request: GenerateTimetableRequest) -> list[TimeSlotPayload]:
        if request.time_slots:
            return list(request.time_slots)
        with self.session_factory() as db:
            rows = db.execute(select(TimeSlot)).scalars().all()
            return [self._reference_row(TimeSlotPayload, row, "time slot") for row in rows]

    def _lecturers(self, request: GenerateTimetableRequest) -> list[LecturerPayload]:
        """Lecturers whose availability both the solver and conflict detection judge against."""
        if request.lecturers:
            return list(request.lecturers)
        lecturer_ids = {item.lecturer_id for item in request.courses}
        if not lecturer_ids:
            return []
        with self.session_factory() as db:
            rows = db.execute(select(Lecturer).where(Lecturer.id.in_(lecturer_ids))).scalars().all()
            return [self._reference_row(LecturerPayload, row, "lecturer") for row in rows]

    @staticmethod
    def _reference_row(schema: type[Any], row: Any, resource_type: str) -> Any:
        try:
            return schema.model_validate(row)
        except ValidationError as exc:
            error = exc.errors()[0]
            location = ".".join(str(part) for part in error["loc"])
            reason = f"{location}: {error['msg']}" if location else error["msg"]
            raise ReferenceDataError(resource_type, str(row.id), reason) from exc

    def _remote_allowed(self, request: GenerateTimetableRequest, academic_year: str, semester: int) -> bool:
        if not self.remote_client.configured or not self.app_settings.adaptive_method_selection:
            return self.remote_client.configured
        with self.session_factory() as db:
            recommendation = recommend_method(db, academic_year, semester, len(request.constraints))
        return recommendation == "ai"

    @staticmethod
    def _screen_references(
        schedule: Sequence[Any],
        request: GenerateTimetableRequest,
        time_slots: Sequence[TimeSlotPayload],
        lecturers: Sequence[LecturerPayload],
    ) -> tuple[list[Any], list[SkippedEntry]]:
        """Drop complete remote entries that name a course, room, lecturer or slot outside this run.

        Incomplete items are kept so persistence reports them with the format error.
        """
        catalogs = {
            "course_id": {item.id for item in request.courses},
            "room_id": {item.id for item in request.rooms},
            "lecturer_id": {item.id for item in lecturers} | {item.lecturer_id for item in request.courses},
            "time_slot_id": {item.id for item in time_slots},
        }
        kept: list[Any] = []
        rejected: list[SkippedEntry] = []
        for raw in schedule:
            if not is_complete_entry(raw):
                kept.append(raw)
                continue
            unknown = [
                f"{field}={raw[field]}" for field in REFERENCE_FIELDS if str(raw[field]).strip() not in catalogs[field]
            ]
            if unknown:
                rejected.append(SkippedEntry(entry=raw, error=f"Unknown reference: {', '.join(unknown)}"))
            else:
                kept.append(raw)

        if not any(is_complete_entry(raw) for raw in kept):
            return [], rejected
        return kept, rejected

    def _reject_remote(self, job_id: str, rejected: int, context: dict[str, Any]) -> None:
        reason = "no entry references known courses, rooms, lecturers and time slots"
        logger.warning("Remote schedule rejected for job %s: %s (%d entries)", job_id, reason, rejected)
        self.events.publish(
            REMOTE_OPTIMIZER_FAILED,
            job_id=job_id,
            reason=reason,
            url=self.remote_client.url,
            rejected_entries=rejected,
            **context,
        )

    def _produce_schedule(
        self,
        request: GenerateTimetableRequest,
        *,
        job_id: str,
        academic_year: str,
        semester: int,
        time_slots: Sequence[TimeSlotPayload],
        lecturers: Sequence[LecturerPayload],
    ) -> tuple[list[Any], str, list[SkippedEntry]]:
        context = {"academic_year": academic_year, "semester": semester}
        if self._remote_allowed(request, academic_year, semester):
            remote_schedule = self.remote_client.optimize(
                {
                    "courses": [item.model_dump(mode="json") for item in request.courses],
                    "rooms": [item.model_dump(mode="json") for item in request.rooms],
                    "lecturers": [item.model_dump(mode="json") for item in lecturers],
                    "constraints": request.constraints,
                },
                job_id=job_id,
                context=context,
            )
            if remote_schedule:
                usable, rejected = self._screen_references(remote_schedule, request, time_slots, lecturers)
                if usable:
                    return usable, "ai", rejected
                self._reject_remote(job_id, len(rejected), context)
            logger.warning("Remote optimizer unavailable for job %s; falling back to genetic solver", job_id)
        else:
            logger.info("Remote optimizer skipped for job %s; using genetic solver", job_id)

        if not request.courses:
            raise EmptyScheduleError(
                "Failed to generate schedule: no course sections to place",
                details={"job_id": job_id, **context},
            )

        scheduler = GeneticScheduler(
            sections=request.courses,
            rooms=request.rooms,
            lecturers=lecturers,
            time_slots=time_slots,
            days=request.days or self.app_settings.working_days,
            settings=self._solver_settings(request),
        )
        entries = scheduler.solve()
        if not entries:
            raise EmptyScheduleError(
                "Failed to generate schedule: genetic solver returned no entries",
                details={"job_id": job_id, **context},
            )
        return entries, "genetic", []

    def _persist(
        self,
        schedule: Sequence[Any],
        *,
        job_id: str,
        academic_year: str,
        semester: int,
        request: GenerateTimetableRequest,
        time_slots: Sequence[TimeSlotPayload],
        lecturers: Sequence[LecturerPayload],
        rejected: Sequence[SkippedEntry] = (),
    ) -> PersistOutcome:
        logger.info("Saving %d entries for job %s (%s semester %s)", len(schedule), job_id, academic_year, semester)
        skipped: list[SkippedEntry] = list(rejected)
        saved = 0

        with self.session_factory() as db, db.begin():
            acquire_term_transaction_lock(db, academic_year, semester)
            term_filter = (TimetableEntry.academic_year == academic_year, TimetableEntry.semester == semester)
            db.execute(delete(Conflict).where(Conflict.academic_year == academic_year, Conflict.semester == semester))
            deleted = db.execute(delete(TimetableEntry).where(*term_filter)).rowcount or 0
            logger.info("Deleted %d existing entries for job %s", deleted, job_id)

            for raw in schedule:
                if not is_complete_entry(raw):
                    skipped.append(
                        SkippedEntry(
                            entry=raw,
                            error=f"Invalid schedule entry format: requires {', '.join(REQUIRED_ENTRY_FIELDS)}",
                        )
                    )
                    continue
                try:
                    entry = ScheduledEntry.model_validate(raw)
                except ValidationError as exc:
                    skipped.append(SkippedEntry(entry=raw, error=f"Invalid schedule entry: {exc.errors()[0]['msg']}"))
                    continue
                db.add(
                    TimetableEntry(
                        course_id=entry.course_id,
                        room_id=entry.room_id,
                        lecturer_id=entry.lecturer_id,
                        day=entry.day,
                        time_slot_id=entry.time_slot_id,
                        academic_year=academic_year,
                        semester=semester,
                        generation_job_id=job_id,
                    )
                )
                saved += 1

            if skipped:
                logger.warning(
                    "Skipped %d malformed entries for job %s (saved %d)",
                    len(skipped),
                    job_id,
                    saved,
                )
            if saved == 0:
                # Leaving the block with an exception rolls the delete back.
                raise EmptyScheduleError(
                    "No entries were saved successfully",
                    details={"job_id": job_id, "skipped": len(skipped)},
                )

            db.flush()
            conflicts = sync_term_conflicts(
                db,
                academic_year,
                semester,
                time_slots=time_slots,
                lecturers=lecturers,
            )

        logger.info("Timetable save completed for job %s: saved=%d conflicts=%d", job_id, saved, len(conflicts))
        return PersistOutcome(saved=saved, deleted=deleted, skipped=skipped, conflicts_count=len(conflicts))

    def generate(
        self,
        request: GenerateTimetableRequest,
        *,
        job_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> GenerationResult:
        job_id = job_id or new_job_id()
        start = perf_counter()

        try:
            academic_year, semester = self._validate(request)
        except GenerationValidationError as exc:
            logger.error("Timetable generation rejected for job %s: %s", job_id, exc.message)
            return GenerationResult(
                job_id=job_id,
                success=False,
                error=exc.message,
                academic_year=request.academic_year,
                semester=request.semester,
            )

        method: str | None = None
        with self.locks.lock_for(academic_year, semester):
            try:
                self._check_cancelled(cancel_event, job_id)
                time_slots = self._time_slots(request)
                lecturers = self._lecturers(request)
                schedule, method, rejected = self._produce_schedule(
                    request,
                    job_id=job_id,
                    academic_year=academic_year,
                    semester=semester,
                    time_slots=time_slots,
                    lecturers=lecturers,
                )
                self._check_cancelled(cancel_event, job_id)
                outcome = self._persist(
                    schedule,
                    job_id=job_id,
                    academic_year=academic_year,
                    semester=semester,
                    request=request,
                    time_slots=time_slots,
                    lecturers=lecturers,
                    rejected=rejected,
                )
            except GenerationCancelledError as exc:
                logger.info("Timetable generation cancelled for job %s", job_id)
                return GenerationResult(
                    job_id=job_id,
                    success=False,
                    method=method,
                    duration_seconds=round(perf_counter() - start, 3),
                    error=exc.message,
                    cancelled=True,
                    academic_year=academic_year,
                    semester=semester,
                )
            except (AppError, SQLAlchemyError) as exc:
                message = exc.message if isinstance(exc, AppError) else f"Database error: {exc}"
                return self._failed(
                    job_id,
                    message,
                    method=method or "genetic",
                    start=start,
                    academic_year=academic_year,
                    semester=semester,
                )

            # Recorded under the term lock so a metric never lands after the next run starts.
            return self._succeeded(
                job_id,
                outcome,
                method=method,
                start=start,
                academic_year=academic_year,
                semester=semester,
            )

    def _succeeded(
        self,
        job_id: str,
        outcome: PersistOutcome,
        *,
        method: str,
        start: float,
        academic_year: str,
        semester: int,
    ) -> GenerationResult:
        duration = round(perf_counter() - start, 3)
        record_generation_attempt(
            self.session_factory,
            job_id,
            method=method,
            duration_seconds=duration,
            success=True,
            entries_generated=outcome.saved,
            conflicts_count=outcome.conflicts_count,
            academic_year=academic_year,
            semester=semester,
        )
        logger.info(
            "Timetable generation completed for job %s (%s semester %s): method=%s entries=%d duration=%.2fs",
            job_id,
            academic_year,
            semester,
            method,
            outcome.saved,
            duration,
        )
        self.events.publish(
            GENERATION_COMPLETED,
            job_id=job_id,
            method=method,
            academic_year=academic_year,
            semester=semester,
            entries_generated=outcome.saved,
            conflicts_count=outcome.conflicts_count,
        )
        return GenerationResult(
            job_id=job_id,
            success=True,
            entries_generated=outcome.saved,
            method=method,
            duration_seconds=duration,
            conflicts_count=outcome.conflicts_count,
            academic_year=academic_year,
            semester=semester,
            skipped_entries=outcome.skipped,
        )

    def _failed(
        self,
        job_id: str,
        message: str,
        *,
        method: str,
        start: float,
        academic_year: str,
        semester: int,
    ) -> GenerationResult:
        duration = round(perf_counter() - start, 3)
        logger.error(
            "Timetable generation failed for job %s (%s semester %s, method=%s): %s",
            job_id,
            academic_year,
            semester,
            method,
            message,
        )
        record_generation_attempt(
            self.session_factory,
            job_id,
            method=method,
            duration_seconds=duration,
            success=False,
            error_message=message,
            academic_year=academic_year,
            semester=semester,
        )
        self.events.publish(
            GENERATION_FAILED,
            job_id=job_id,
            method=method,
            academic_year=academic_year,
            semester=semester,
            error=message,
        )
        return GenerationResult(
            job_id=job_id,
            success=False,
            method=method,
            duration_seconds=duration,
            error=message,
            academic_year=academic_year,
            semester=semester,
        )
