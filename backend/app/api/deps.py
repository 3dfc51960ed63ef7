from collections.abc import Callable, Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.job_queue import GenerationJobQueue
from app.services.orchestrator import TimetableGenerationOrchestrator


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_db(session_factory: Callable[[], Session] = Depends(get_session_factory)) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_orchestrator(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> TimetableGenerationOrchestrator:
    return TimetableGenerationOrchestrator(session_factory)


def get_job_queue(
    request: Request,
    orchestrator: TimetableGenerationOrchestrator = Depends(get_orchestrator),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> GenerationJobQueue:
    # One queue per application; it owns the worker threads.
    queue = getattr(request.app.state, "job_queue", None)
    if queue is None:
        queue = GenerationJobQueue(
            orchestrator,
            session_factory,
            max_workers=get_settings().generation_workers,
        )
        request.app.state.job_queue = queue
    return queue
