import threading

import httpx
from sqlalchemy import select

from app.models import Conflict, Lecturer, LecturerAvailability, TimeSlot, TimetableEntry, TimetableGenerationMetric
from app.services.events import GENERATION_COMPLETED, GENERATION_FAILED, REMOTE_OPTIMIZER_FAILED
from app.services.orchestrator import acquire_term_transaction_lock, term_lock_key

YEAR = "2025/2026"


def remote_entry(course, room, lecturer, day="MONDAY", slot="slot-1"):
    return {"course_id": course, "room_id": room, "lecturer_id": lecturer, "day": day, "time_slot_id": slot}


def term_entries(db, academic_year=YEAR, semester=1):
    return (
        db.execute(
            select(TimetableEntry).where(
                TimetableEntry.academic_year == academic_year, TimetableEntry.semester == semester
            )
        )
        .scalars()
        .all()
    )


def metrics(db):
    return db.execute(select(TimetableGenerationMetric)).scalars().all()


def test_scenario_b_remote_500_falls_back_to_genetic(make_orchestrator, make_request, db_session, event_hub):
    received = []
    event_hub.subscribe(REMOTE_OPTIMIZER_FAILED, received.append)
    orchestrator = make_orchestrator(lambda request: httpx.Response(500))

    result = orchestrator.generate(make_request())

    assert result.success
    assert result.method == "genetic"
    assert result.entries_generated == 5
    assert result.job_id.startswith("timetable_")
    assert len(received) == 1
    assert len(term_entries(db_session)) == 5
    [metric] = metrics(db_session)
    assert metric.method == "genetic"
    assert metric.success
    assert metric.job_id == result.job_id
    assert metric.entries_generated == 5
    assert metric.academic_year == YEAR
    assert metric.semester == 1


def test_remote_schedule_is_adopted(make_orchestrator, make_request, db_session):
    schedule = [
        remote_entry("course-1", "room-1", "lect-1", slot="slot-1"),
        remote_entry("course-2", "room-2", "lect-2", slot="slot-1"),
        remote_entry("course-3", "room-1", "lect-3", day="TUE", slot="slot-2"),
    ]
    orchestrator = make_orchestrator(lambda request: httpx.Response(200, json=schedule))

    result = orchestrator.generate(make_request())

    assert result.success
    assert result.method == "ai"
    assert result.entries_generated == 3
    assert {item.day for item in term_entries(db_session)} == {"MONDAY", "TUESDAY"}
    assert metrics(db_session)[0].method == "ai"


def test_unconfigured_remote_goes_straight_to_genetic(make_orchestrator, make_request):
    result = make_orchestrator().generate(make_request())

    assert result.success
    assert result.method == "genetic"


def test_scenario_c_empty_everywhere_fails_without_touching_entries(
    make_orchestrator, make_request, db_session, event_hub
):
    baseline = make_orchestrator().generate(make_request())
    assert baseline.success
    before = {item.id for item in term_entries(db_session)}
    failed_events = []
    event_hub.subscribe(GENERATION_FAILED, failed_events.append)

    result = make_orchestrator(lambda request: httpx.Response(200, json=[])).generate(make_request(courses=[]))

    assert not result.success
    assert result.entries_generated == 0
    assert "Failed to generate schedule" in result.error
    db_session.expire_all()
    assert {item.id for item in term_entries(db_session)} == before
    assert len(failed_events) == 1
    failure = [item for item in metrics(db_session) if not item.success]
    assert len(failure) == 1
    assert failure[0].error_message == result.error


def test_second_run_fully_replaces_first(make_orchestrator, make_request, db_session):
    orchestrator = make_orchestrator()

    first = orchestrator.generate(make_request())
    second = orchestrator.generate(make_request(sections=4))

    assert first.success and second.success
    entries = term_entries(db_session)
    assert len(entries) == 4
    assert {item.generation_job_id for item in entries} == {second.job_id}


def test_other_terms_are_untouched(make_orchestrator, make_request, db_session):
    orchestrator = make_orchestrator()
    orchestrator.generate(make_request(semester=1))
    orchestrator.generate(make_request(semester=2))

    orchestrator.generate(make_request(semester=1, sections=3))

    assert len(term_entries(db_session, semester=1)) == 3
    assert len(term_entries(db_session, semester=2)) == 5


def test_malformed_entries_are_skipped_not_fatal(make_orchestrator, make_request, db_session):
    schedule = [
        remote_entry("course-1", "room-1", "lect-1"),
        {"course_id": "course-2", "room_id": "room-2", "day": "MONDAY", "time_slot_id": "slot-1"},
        remote_entry("course-3", "room-3", "lect-3", day="SUNDAY"),
        "not-an-entry",
    ]
    orchestrator = make_orchestrator(lambda request: httpx.Response(200, json=schedule))

    result = orchestrator.generate(make_request())

    assert result.success
    assert result.method == "ai"
    assert result.entries_generated == 1
    assert len(result.skipped_entries) == 3
    assert "Invalid schedule entry format" in result.skipped_entries[0].error
    assert len(term_entries(db_session)) == 1


def test_zero_saved_rolls_back_previous_schedule_stays(make_orchestrator, make_request, db_session):
    make_orchestrator().generate(make_request())
    before = {item.id for item in term_entries(db_session)}
    schedule = [remote_entry("course-1", "room-1", "lect-1", day="SATURDAY")]

    result = make_orchestrator(lambda request: httpx.Response(200, json=schedule)).generate(make_request())

    assert not result.success
    assert result.method == "ai"
    assert result.error == "No entries were saved successfully"
    db_session.expire_all()
    assert {item.id for item in term_entries(db_session)} == before
    assert [item.method for item in metrics(db_session) if not item.success] == ["ai"]


def test_missing_term_is_a_validation_failure_without_metric(make_orchestrator, make_request, db_session):
    result = make_orchestrator().generate(make_request(academic_year=None))

    assert not result.success
    assert result.method is None
    assert result.error == "Missing required academic year or semester"
    assert metrics(db_session) == []
    assert term_entries(db_session) == []


def test_degenerate_instance_reports_failure(make_orchestrator, make_request, db_session):
    result = make_orchestrator().generate(make_request(rooms=[]))

    assert not result.success
    assert result.method == "genetic"
    assert "at least one room" in result.error
    assert term_entries(db_session) == []


def test_cancelled_run_leaves_state_untouched(make_orchestrator, make_request, db_session):
    cancel = threading.Event()
    cancel.set()

    result = make_orchestrator().generate(make_request(), job_id="timetable_cancelled", cancel_event=cancel)

    assert not result.success
    assert result.cancelled
    assert "cancelled" in result.error
    assert term_entries(db_session) == []
    assert metrics(db_session) == []


def test_time_slots_load_from_reference_table(make_orchestrator, make_request, reference_data, db_session):
    request = make_request()
    request.time_slots = None

    result = make_orchestrator().generate(request)

    assert result.success
    assert {item.time_slot_id for item in term_entries(db_session)} <= set(reference_data.slot_ids)


def test_double_booking_from_remote_is_recorded_as_conflict(make_orchestrator, make_request, db_session, event_hub):
    completed = []
    event_hub.subscribe(GENERATION_COMPLETED, completed.append)
    schedule = [
        remote_entry("course-1", "room-1", "lect-1"),
        remote_entry("course-2", "room-1", "lect-2"),
    ]

    result = make_orchestrator(lambda request: httpx.Response(200, json=schedule)).generate(make_request())

    assert result.success
    assert result.conflicts_count == 1
    [conflict] = db_session.execute(select(Conflict)).scalars().all()
    assert conflict.conflict_type.value == "ROOM"
    assert all(item.has_conflict and item.conflict_type == "ROOM" for item in term_entries(db_session))
    assert metrics(db_session)[0].conflicts_count == 1
    assert completed[0].payload["conflicts_count"] == 1


def test_same_term_runs_serialize(make_orchestrator, make_request, db_session):
    orchestrator = make_orchestrator()
    results = []

    def run(sections):
        results.append(orchestrator.generate(make_request(sections=sections)))

    threads = [threading.Thread(target=run, args=(count,)) for count in (3, 5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(item.success for item in results)
    entries = term_entries(db_session)
    assert len({item.generation_job_id for item in entries}) == 1
    assert len(entries) in {3, 5}


def test_remote_schedule_with_unknown_references_falls_back(make_orchestrator, make_request, db_session, event_hub):
    received = []
    event_hub.subscribe(REMOTE_OPTIMIZER_FAILED, received.append)
    schedule = [remote_entry("course-404", "room-999", "lect-1", slot="slot-77")]

    result = make_orchestrator(lambda request: httpx.Response(200, json=schedule)).generate(make_request())

    assert result.success
    assert result.method == "genetic"
    assert result.entries_generated == 5
    assert {item.course_id for item in term_entries(db_session)} <= {f"course-{index}" for index in range(1, 6)}
    assert len(received) == 1
    assert received[0].payload["rejected_entries"] == 1


def test_unknown_references_are_skipped_beside_valid_remote_entries(make_orchestrator, make_request, db_session):
    schedule = [
        remote_entry("course-1", "room-1", "lect-1"),
        remote_entry("course-2", "room-999", "lect-2"),
    ]

    result = make_orchestrator(lambda request: httpx.Response(200, json=schedule)).generate(make_request())

    assert result.success
    assert result.method == "ai"
    assert result.entries_generated == 1
    [skipped] = result.skipped_entries
    assert skipped.error == "Unknown reference: room_id=room-999"


def test_overlong_identifier_is_skipped_not_fatal(make_orchestrator, make_request, db_session):
    schedule = [
        remote_entry("course-1", "room-1", "lect-1"),
        remote_entry("course-2", "r" * 40, "lect-2"),
    ]

    result = make_orchestrator(lambda request: httpx.Response(200, json=schedule)).generate(make_request())

    assert result.success
    assert result.entries_generated == 1
    assert len(result.skipped_entries) == 1
    assert [item.course_id for item in term_entries(db_session)] == ["course-1"]


def test_term_lock_key_is_stable_per_term():
    assert term_lock_key(YEAR, 1) == term_lock_key(YEAR, 1)
    assert term_lock_key(YEAR, 1) != term_lock_key(YEAR, 2)
    assert 0 <= term_lock_key(YEAR, 1) < 2**32


def test_transaction_lock_is_skipped_off_postgresql(db_session):
    acquire_term_transaction_lock(db_session, YEAR, 1)

    assert not db_session.in_transaction()


def seed_lecturers(session_factory, day, start_time, end_time):
    with session_factory() as db:
        for index in range(1, 4):
            lecturer = Lecturer(id=f"lect-{index}", name=f"Lecturer {index}")
            lecturer.availability = [LecturerAvailability(day=day, start_time=start_time, end_time=end_time)]
            db.add(lecturer)
        db.commit()


def test_unreadable_time_slot_row_fails_the_run_with_a_metric(
    make_orchestrator, make_request, session_factory, db_session
):
    with session_factory() as db:
        db.add(TimeSlot(id="slot-x", start_time="9:00", end_time="10:00", label="P1"))
        db.commit()

    result = make_orchestrator().generate(make_request(time_slots=None))

    assert not result.success
    assert result.error.startswith("Invalid time slot reference data slot-x")
    assert term_entries(db_session) == []
    [metric] = metrics(db_session)
    assert not metric.success
    assert metric.error_message == result.error


def test_unreadable_lecturer_availability_fails_the_run(make_orchestrator, make_request, session_factory, db_session):
    seed_lecturers(session_factory, "MONDAY", "25:00", "26:00")

    result = make_orchestrator().generate(make_request(lecturers=[]))

    assert not result.success
    assert "Invalid lecturer reference data lect-" in result.error
    assert term_entries(db_session) == []
    assert [item.success for item in metrics(db_session)] == [False]


def test_stored_lecturer_availability_steers_solver_and_detection_alike(
    make_orchestrator, make_request, session_factory, db_session
):
    seed_lecturers(session_factory, "WEDNESDAY", "08:00", "18:00")
    request = make_request(
        lecturers=[],
        settings_override={
            "population_size": 30,
            "generations": 60,
            "stagnation_limit": 10,
            "random_seed": 7,
            "strict_availability": True,
        },
    )

    result = make_orchestrator().generate(request)

    assert result.success
    assert result.method == "genetic"
    assert result.conflicts_count == 0
    assert db_session.execute(select(Conflict)).scalars().all() == []
    assert {item.day for item in term_entries(db_session)} == {"WEDNESDAY"}
