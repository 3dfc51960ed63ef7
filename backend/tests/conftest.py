import os

# Keep app.db.session off the production database while the suite imports the app.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_job_queue, get_orchestrator, get_session_factory
from app.core.config import Settings
from app.db.base import Base
from app.main import app
from app.models import Course, Lecturer, LecturerAvailability, Room, TimeSlot
from app.schemas.generator import GenerateTimetableRequest, GenerationSettingsBase
from app.services.events import GenerationEventHub
from app.services.job_queue import GenerationJobQueue
from app.services.orchestrator import TermLockRegistry, TimetableGenerationOrchestrator
from app.services.remote_optimizer import RemoteOptimizerClient

REMOTE_URL = "http://optimizer.test/optimize"
WEEKDAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]
SLOT_TIMES = [("09:00", "10:30"), ("10:45", "12:15"), ("13:00", "14:30"), ("14:45", "16:15")]


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def reference_data(session_factory):
    """Scenario A data: 5 sections, 3 rooms of 50 seats, 3 lecturers free MON-FRI 09-17, 4 slots."""
    with session_factory() as db:
        rooms = [Room(id=f"room-{index}", name=f"Room {index}", building="Main", capacity=50) for index in range(1, 4)]
        lecturers = []
        for index in range(1, 4):
            lecturer = Lecturer(id=f"lect-{index}", name=f"Lecturer {index}")
            lecturer.availability = [
                LecturerAvailability(day=day, start_time="09:00", end_time="17:00") for day in WEEKDAYS
            ]
            lecturers.append(lecturer)
        slots = [
            TimeSlot(id=f"slot-{index}", start_time=start, end_time=end, label=f"P{index}")
            for index, (start, end) in enumerate(SLOT_TIMES, start=1)
        ]
        courses = [
            Course(
                id=f"course-{index}",
                code=f"CS10{index}",
                name=f"Course {index}",
                expected_enrollment=40,
                lecturer_id=f"lect-{(index - 1) % 3 + 1}",
            )
            for index in range(1, 6)
        ]
        db.add_all([*rooms, *lecturers, *slots, *courses])
        db.commit()
    return SimpleNamespace(
        room_ids=[f"room-{index}" for index in range(1, 4)],
        lecturer_ids=[f"lect-{index}" for index in range(1, 4)],
        slot_ids=[f"slot-{index}" for index in range(1, 5)],
        course_ids=[f"course-{index}" for index in range(1, 6)],
    )


def build_request_payload(*, academic_year="2025/2026", semester=1, sections=5, **extra) -> dict:
    payload = {
        "academic_year": academic_year,
        "semester": semester,
        "courses": [
            {
                "id": f"course-{index}",
                "code": f"CS10{index}",
                "expected_enrollment": 40,
                "lecturer_id": f"lect-{(index - 1) % 3 + 1}",
            }
            for index in range(1, sections + 1)
        ],
        "rooms": [{"id": f"room-{index}", "building": "Main", "capacity": 50} for index in range(1, 4)],
        "lecturers": [
            {
                "id": f"lect-{index}",
                "availability": [{"day": day, "start_time": "09:00", "end_time": "17:00"} for day in WEEKDAYS],
            }
            for index in range(1, 4)
        ],
        "constraints": [],
        "time_slots": [
            {"id": f"slot-{index}", "start_time": start, "end_time": end}
            for index, (start, end) in enumerate(SLOT_TIMES, start=1)
        ],
        "settings_override": {"population_size": 30, "generations": 60, "stagnation_limit": 10, "random_seed": 7},
    }
    payload.update(extra)
    return payload


@pytest.fixture()
def make_request():
    def _make(**kwargs) -> GenerateTimetableRequest:
        return GenerateTimetableRequest.model_validate(build_request_payload(**kwargs))

    return _make


@pytest.fixture()
def solver_settings():
    return GenerationSettingsBase(population_size=30, generations=80, stagnation_limit=10, random_seed=11)


@pytest.fixture()
def event_hub():
    return GenerationEventHub()


def remote_client(handler=None, *, events=None, url=REMOTE_URL) -> RemoteOptimizerClient:
    transport = httpx.MockTransport(handler) if handler is not None else None
    return RemoteOptimizerClient(url if handler is not None else None, timeout=5, events=events, transport=transport)


@pytest.fixture()
def make_orchestrator(session_factory, event_hub):
    def _make(handler=None, **settings_overrides) -> TimetableGenerationOrchestrator:
        app_settings = Settings(
            database_url="sqlite+pysqlite://",
            remote_optimizer_url=REMOTE_URL if handler is not None else None,
            **settings_overrides,
        )
        return TimetableGenerationOrchestrator(
            session_factory,
            remote_client=remote_client(handler, events=event_hub),
            app_settings=app_settings,
            events=event_hub,
            locks=TermLockRegistry(),
        )

    return _make


@pytest.fixture()
def client(session_factory, make_orchestrator, reference_data):
    orchestrator = make_orchestrator()
    queue = GenerationJobQueue(orchestrator, session_factory, max_workers=2)

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_job_queue] = lambda: queue

    # Not entered as a context manager: the lifespan would bootstrap the configured database.
    test_client = TestClient(app)
    yield test_client

    queue.shutdown(wait=True)
    app.dependency_overrides.clear()
