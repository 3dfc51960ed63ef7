from types import SimpleNamespace

from app.services.constraints import (
    Placement,
    availability_violations,
    capacity_violations,
    fits_capacity,
    hard_conflict_count,
    is_lecturer_free,
    is_room_free,
    is_within_availability,
)

SLOT_MORNING = SimpleNamespace(id="s1", start_time="09:00", end_time="10:30")
SLOT_AFTERNOON = SimpleNamespace(id="s2", start_time="14:00", end_time="15:30")


def window(day, start, end):
    return SimpleNamespace(day=day, start_time=start, end_time=end)


def test_room_and_lecturer_freedom():
    schedule = [Placement("c1", "r1", "l1", "MONDAY", "s1")]

    assert not is_room_free(schedule, "r1", "MON", SLOT_MORNING)
    assert is_room_free(schedule, "r1", "TUESDAY", SLOT_MORNING)
    assert is_room_free(schedule, "r2", "MONDAY", SLOT_MORNING)
    assert not is_lecturer_free(schedule, SimpleNamespace(id="l1"), "MONDAY", "s1")
    assert is_lecturer_free(schedule, "l1", "MONDAY", "s2")
    assert is_room_free(schedule, "r1", "MONDAY", "s1", ignore=schedule[0])


def test_availability_window_must_contain_slot():
    lecturer = SimpleNamespace(id="l1", availability=[window("MONDAY", "08:00", "12:00")])

    assert is_within_availability(lecturer, "MONDAY", SLOT_MORNING)
    assert not is_within_availability(lecturer, "MONDAY", SLOT_AFTERNOON)
    # No window declared on Tuesday means unavailable, not an error.
    assert not is_within_availability(lecturer, "TUESDAY", SLOT_MORNING)


def test_availability_with_multiple_windows_and_mapping_lecturer():
    lecturer = {"id": "l1", "availability": [window("MON", "08:00", "09:30"), window("MON", "13:30", "16:00")]}

    assert is_within_availability(lecturer, "MONDAY", SLOT_AFTERNOON)
    assert not is_within_availability(lecturer, "MONDAY", SLOT_MORNING)
    assert not is_within_availability(None, "MONDAY", SLOT_MORNING)


def test_fits_capacity_boundary():
    section = SimpleNamespace(expected_enrollment=40)
    assert fits_capacity(SimpleNamespace(capacity=40), section)
    assert not fits_capacity(SimpleNamespace(capacity=39), section)


def test_hard_conflict_count_counts_room_and_lecturer_repeats():
    schedule = [
        Placement("c1", "r1", "l1", "MONDAY", "s1"),
        Placement("c2", "r1", "l2", "MONDAY", "s1"),
        Placement("c3", "r1", "l1", "MONDAY", "s1"),
        Placement("c4", "r2", "l3", "MONDAY", "s1"),
    ]
    # Room r1 used three times (2 extra) and lecturer l1 twice (1 extra).
    assert hard_conflict_count(schedule) == 3
    assert hard_conflict_count(schedule[3:]) == 0


def test_capacity_and_availability_violations():
    schedule = [
        Placement("c1", "r1", "l1", "MONDAY", "s1"),
        Placement("c2", "r2", "l1", "MONDAY", "s2"),
    ]
    rooms = {"r1": SimpleNamespace(capacity=30), "r2": SimpleNamespace(capacity=100)}
    sections = {"c1": SimpleNamespace(expected_enrollment=45), "c2": SimpleNamespace(expected_enrollment=45)}
    lecturers = {"l1": SimpleNamespace(availability=[window("MONDAY", "08:00", "12:00")])}
    slots = {"s1": SLOT_MORNING, "s2": SLOT_AFTERNOON}

    assert capacity_violations(schedule, rooms, sections) == 1
    assert availability_violations(schedule, lecturers, slots) == 1
