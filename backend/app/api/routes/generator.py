import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_job_queue, get_orchestrator
from app.schemas.generator import (
    GenerateTimetableRequest,
    GenerationJobOut,
    GenerationResult,
    GenerationSettingsOut,
    GenerationSettingsUpdate,
)
from app.services.generation_settings import load_generation_settings, save_generation_settings
from app.services.job_queue import GenerationJobQueue
from app.services.orchestrator import TimetableGenerationOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/generate", response_model=GenerationResult)
def generate_timetable(
    payload: GenerateTimetableRequest,
    orchestrator: TimetableGenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationResult:
    return orchestrator.generate(payload)


@router.post("/jobs", response_model=GenerationJobOut, status_code=status.HTTP_202_ACCEPTED)
def enqueue_generation(
    payload: GenerateTimetableRequest,
    queue: GenerationJobQueue = Depends(get_job_queue),
) -> GenerationJobOut:
    return queue.submit(payload)


@router.get("/jobs/{job_id}", response_model=GenerationJobOut)
def get_generation_job(job_id: str, queue: GenerationJobQueue = Depends(get_job_queue)) -> GenerationJobOut:
    return queue.get(job_id)


@router.delete("/jobs/{job_id}", response_model=GenerationJobOut)
def cancel_generation_job(job_id: str, queue: GenerationJobQueue = Depends(get_job_queue)) -> GenerationJobOut:
    return queue.cancel(job_id)


@router.get("/settings", response_model=GenerationSettingsOut)
def get_generation_settings(db: Session = Depends(get_db)) -> GenerationSettingsOut:
    return load_generation_settings(db)


@router.put("/settings", response_model=GenerationSettingsOut)
def update_generation_settings(
    payload: GenerationSettingsUpdate,
    db: Session = Depends(get_db),
) -> GenerationSettingsOut:
    updated = save_generation_settings(db, payload)
    logger.info(
        "Generation settings updated: population=%d generations=%d strict_availability=%s seed=%s",
        updated.population_size,
        updated.generations,
        updated.strict_availability,
        updated.random_seed,
    )
    return updated
