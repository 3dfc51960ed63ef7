from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.timetable_generation import GenerationJob, GenerationJobStatus
from app.schemas.generator import GenerateTimetableRequest, GenerationJobOut, GenerationResult
from app.services.orchestrator import TimetableGenerationOrchestrator, new_job_id

logger = logging.getLogger(__name__)

FINISHED_STATUSES = {GenerationJobStatus.succeeded, GenerationJobStatus.failed, GenerationJobStatus.cancelled}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationJobQueue:
    """Background generation runs on a thread pool, tracked in ``generation_jobs``.

    Runs for different terms proceed in parallel; same-term runs serialize on the
    orchestrator's term lock.
    """

    def __init__(
        self,
        orchestrator: TimetableGenerationOrchestrator,
        session_factory: Callable[[], Session],
        *,
        max_workers: int = 2,
    ) -> None:
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="timetable-generation")
        self._cancel_events: dict[str, threading.Event] = {}
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def _update(self, job_id: str, **values) -> GenerationJobOut:
        with self.session_factory() as db:
            job = db.get(GenerationJob, job_id)
            if job is None:
                raise ResourceNotFoundError("Generation job", job_id)
            for key, value in values.items():
                setattr(job, key, value)
            db.commit()
            db.refresh(job)
            return GenerationJobOut.model_validate(job)

    def submit(self, request: GenerateTimetableRequest) -> GenerationJobOut:
        job_id = new_job_id()
        with self.session_factory() as db:
            job = GenerationJob(
                job_id=job_id,
                academic_year=request.academic_year,
                semester=request.semester,
                status=GenerationJobStatus.queued,
                result={},
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            queued = GenerationJobOut.model_validate(job)

        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[job_id] = cancel_event
            self._futures[job_id] = self._executor.submit(self._run, job_id, request, cancel_event)
        logger.info("Queued generation job %s for %s semester %s", job_id, request.academic_year, request.semester)
        return queued

    def _run(self, job_id: str, request: GenerateTimetableRequest, cancel_event: threading.Event) -> None:
        try:
            if cancel_event.is_set():
                self._update(job_id, status=GenerationJobStatus.cancelled, finished_at=_utcnow())
                return
            self._update(job_id, status=GenerationJobStatus.running, started_at=_utcnow())
            result = self.orchestrator.generate(request, job_id=job_id, cancel_event=cancel_event)
            self._finish(job_id, result)
        except Exception:
            # Worker boundary: the submitting request has already returned.
            logger.exception("Generation job %s crashed", job_id)
            self._update(
                job_id,
                status=GenerationJobStatus.failed,
                error_message="Unexpected error during generation",
                finished_at=_utcnow(),
            )
        finally:
            with self._lock:
                self._cancel_events.pop(job_id, None)
                self._futures.pop(job_id, None)

    def _finish(self, job_id: str, result: GenerationResult) -> None:
        if result.success:
            status = GenerationJobStatus.succeeded
        elif result.cancelled:
            status = GenerationJobStatus.cancelled
        else:
            status = GenerationJobStatus.failed
        self._update(
            job_id,
            status=status,
            method=result.method,
            entries_generated=result.entries_generated,
            error_message=result.error,
            result=result.model_dump(mode="json"),
            finished_at=_utcnow(),
        )
        logger.info("Generation job %s finished with status %s", job_id, status.value)

    def get(self, job_id: str) -> GenerationJobOut:
        with self.session_factory() as db:
            job = db.get(GenerationJob, job_id)
            if job is None:
                raise ResourceNotFoundError("Generation job", job_id)
            return GenerationJobOut.model_validate(job)

    def cancel(self, job_id: str) -> GenerationJobOut:
        """Request cancellation; a run already persisting its schedule still completes."""
        job = self.get(job_id)
        if job.status in FINISHED_STATUSES:
            return job

        with self._lock:
            cancel_event = self._cancel_events.get(job_id)
            future = self._futures.get(job_id)
        if cancel_event is not None:
            cancel_event.set()
        if future is not None and future.cancel():
            # Never started, so _run will not update the row.
            with self._lock:
                self._cancel_events.pop(job_id, None)
                self._futures.pop(job_id, None)
            return self._update(job_id, status=GenerationJobStatus.cancelled, finished_at=_utcnow())
        logger.info("Cancellation requested for generation job %s", job_id)
        return self.get(job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> GenerationJobOut:
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for event in self._cancel_events.values():
                event.set()
        self._executor.shutdown(wait=wait)
