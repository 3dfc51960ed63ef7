"""Placement predicates shared by the genetic solver, conflict detection and the resolver.

A *schedule* is any iterable of objects exposing ``room_id``, ``lecturer_id``, ``day`` and
``time_slot_id`` attributes: solver ``Placement`` tuples and persisted ``TimetableEntry`` rows
are both accepted, so every consumer answers "is this placement valid" the same way.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

from app.schemas.common import normalize_day, parse_time_to_minutes


class Placement(NamedTuple):
    course_id: str
    room_id: str
    lecturer_id: str
    day: str
    time_slot_id: str

    def as_dict(self) -> dict[str, str]:
        return self._asdict()


def _identifier(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "id", value))


def room_key(entry: Any) -> tuple[str, str, str]:
    return (str(entry.room_id), str(entry.day), str(entry.time_slot_id))


def lecturer_key(entry: Any) -> tuple[str, str, str]:
    return (str(entry.lecturer_id), str(entry.day), str(entry.time_slot_id))


def is_room_free(schedule: Iterable[Any], room: Any, day: str, slot: Any, *, ignore: Any = None) -> bool:
    """True when no entry of ``schedule`` (other than ``ignore``) occupies room/day/slot."""
    target = (_identifier(room), normalize_day(day), _identifier(slot))
    for entry in schedule:
        if ignore is not None and entry is ignore:
            continue
        if room_key(entry) == target:
            return False
    return True


def is_lecturer_free(schedule: Iterable[Any], lecturer: Any, day: str, slot: Any, *, ignore: Any = None) -> bool:
    target = (_identifier(lecturer), normalize_day(day), _identifier(slot))
    for entry in schedule:
        if ignore is not None and entry is ignore:
            continue
        if lecturer_key(entry) == target:
            return False
    return True


def availability_windows(lecturer: Any) -> list[Any]:
    if lecturer is None:
        return []
    if isinstance(lecturer, Mapping):
        return list(lecturer.get("availability") or [])
    return list(getattr(lecturer, "availability", None) or [])


def is_within_availability(lecturer: Any, day: str, slot: Any) -> bool:
    """True if a window of ``lecturer`` on ``day`` contains the slot's interval.

    A lecturer without windows on ``day`` is unavailable that day; this is not an error.
    """
    target_day = normalize_day(day)
    slot_start = parse_time_to_minutes(slot.start_time)
    slot_end = parse_time_to_minutes(slot.end_time)
    for window in availability_windows(lecturer):
        if normalize_day(window.day) != target_day:
            continue
        if parse_time_to_minutes(window.start_time) <= slot_start and slot_end <= parse_time_to_minutes(window.end_time):
            return True
    return False


def fits_capacity(room: Any, section: Any) -> bool:
    return room.capacity >= section.expected_enrollment


def hard_conflict_count(schedule: Iterable[Any]) -> int:
    """Count room and lecturer double bookings.

    A (room, day, slot) triple used ``n`` times contributes ``n - 1``; lecturer triples alike.
    """
    rooms: Counter[tuple[str, str, str]] = Counter()
    lecturers: Counter[tuple[str, str, str]] = Counter()
    for entry in schedule:
        rooms[room_key(entry)] += 1
        lecturers[lecturer_key(entry)] += 1
    return sum(count - 1 for count in rooms.values() if count > 1) + sum(
        count - 1 for count in lecturers.values() if count > 1
    )


def capacity_violations(
    schedule: Iterable[Any],
    rooms_by_id: Mapping[str, Any],
    sections_by_id: Mapping[str, Any],
) -> int:
    violations = 0
    for entry in schedule:
        room = rooms_by_id.get(str(entry.room_id))
        section = sections_by_id.get(str(entry.course_id))
        if room is None or section is None:
            continue
        if not fits_capacity(room, section):
            violations += 1
    return violations


def availability_violations(
    schedule: Iterable[Any],
    lecturers_by_id: Mapping[str, Any],
    slots_by_id: Mapping[str, Any],
) -> int:
    violations = 0
    for entry in schedule:
        slot = slots_by_id.get(str(entry.time_slot_id))
        if slot is None:
            continue
        if not is_within_availability(lecturers_by_id.get(str(entry.lecturer_id)), entry.day, slot):
            violations += 1
    return violations
