from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from itertools import combinations
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.conflict import Conflict, ConflictType
from app.models.lecturer import Lecturer
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import TimetableEntry
from app.services.constraints import is_within_availability, lecturer_key, room_key

logger = logging.getLogger(__name__)

# When an entry is involved in several conflicts, its flag shows the most severe kind.
_SEVERITY = {ConflictType.room: 0, ConflictType.lecturer: 1, ConflictType.availability: 2}


@dataclass(frozen=True)
class DetectedConflict:
    conflict_type: ConflictType
    entry1_id: str
    entry2_id: str | None
    description: str


def _pairs_sharing(
    entries: Sequence[Any],
    key: Callable[[Any], tuple[str, str, str]],
) -> Iterable[tuple[Any, Any]]:
    buckets: dict[tuple[str, str, str], list[Any]] = defaultdict(list)
    for entry in entries:
        buckets[key(entry)].append(entry)
    for bucket in buckets.values():
        if len(bucket) > 1:
            yield from combinations(bucket, 2)


def detect_conflicts(
    entries: Sequence[Any],
    time_slots_by_id: Mapping[str, Any],
    lecturers_by_id: Mapping[str, Any],
) -> list[DetectedConflict]:
    """Return ROOM and LECTURER double bookings as pairs, availability misses as singles.

    Availability is only judged for lecturers present in ``lecturers_by_id`` and slots present
    in ``time_slots_by_id``.
    """
    found: list[DetectedConflict] = []

    for first, second in _pairs_sharing(entries, room_key):
        found.append(
            DetectedConflict(
                conflict_type=ConflictType.room,
                entry1_id=str(first.id),
                entry2_id=str(second.id),
                description=(
                    f"Room {first.room_id} is double-booked on {first.day} in slot {first.time_slot_id}: "
                    f"courses {first.course_id} and {second.course_id}"
                ),
            )
        )

    for first, second in _pairs_sharing(entries, lecturer_key):
        found.append(
            DetectedConflict(
                conflict_type=ConflictType.lecturer,
                entry1_id=str(first.id),
                entry2_id=str(second.id),
                description=(
                    f"Lecturer {first.lecturer_id} is double-booked on {first.day} in slot {first.time_slot_id}: "
                    f"courses {first.course_id} and {second.course_id}"
                ),
            )
        )

    for entry in entries:
        lecturer = lecturers_by_id.get(str(entry.lecturer_id))
        slot = time_slots_by_id.get(str(entry.time_slot_id))
        if lecturer is None or slot is None:
            continue
        if not is_within_availability(lecturer, entry.day, slot):
            found.append(
                DetectedConflict(
                    conflict_type=ConflictType.availability,
                    entry1_id=str(entry.id),
                    entry2_id=None,
                    description=(
                        f"Lecturer {entry.lecturer_id} is not available on {entry.day} "
                        f"{slot.start_time}-{slot.end_time} (course {entry.course_id})"
                    ),
                )
            )

    return found


def _load_term_entries(db: Session, academic_year: str, semester: int) -> list[TimetableEntry]:
    return list(
        db.execute(
            select(TimetableEntry)
            .where(TimetableEntry.academic_year == academic_year, TimetableEntry.semester == semester)
            .order_by(TimetableEntry.day, TimetableEntry.time_slot_id, TimetableEntry.room_id)
        ).scalars()
    )


def sync_term_conflicts(
    db: Session,
    academic_year: str,
    semester: int,
    *,
    time_slots: Iterable[Any] | None = None,
    lecturers: Iterable[Any] | None = None,
) -> list[Conflict]:
    """Replace the term's conflict rows with a fresh detection pass.

    Runs inside the caller's transaction and does not commit. Slot and lecturer catalogs
    default to the reference tables.
    """
    entries = _load_term_entries(db, academic_year, semester)
    if time_slots is None:
        time_slots = db.execute(select(TimeSlot)).scalars().all()
    if lecturers is None:
        lecturer_ids = {entry.lecturer_id for entry in entries}
        lecturers = (
            db.execute(select(Lecturer).where(Lecturer.id.in_(lecturer_ids))).scalars().all() if lecturer_ids else []
        )
    slots_by_id = {str(item.id): item for item in time_slots}
    lecturers_by_id = {str(item.id): item for item in lecturers}

    db.execute(delete(Conflict).where(Conflict.academic_year == academic_year, Conflict.semester == semester))
    db.execute(
        update(TimetableEntry)
        .where(TimetableEntry.academic_year == academic_year, TimetableEntry.semester == semester)
        .values(has_conflict=False, conflict_type=None)
        .execution_options(synchronize_session="fetch")
    )

    detected = detect_conflicts(entries, slots_by_id, lecturers_by_id)
    entries_by_id = {entry.id: entry for entry in entries}
    rows: list[Conflict] = []
    for item in detected:
        rows.append(
            Conflict(
                entry1_id=item.entry1_id,
                entry2_id=item.entry2_id,
                conflict_type=item.conflict_type,
                description=item.description,
                resolved=False,
                academic_year=academic_year,
                semester=semester,
            )
        )
        for entry_id in (item.entry1_id, item.entry2_id):
            entry = entries_by_id.get(entry_id)
            if entry is None:
                continue
            current = ConflictType(entry.conflict_type) if entry.conflict_type else None
            if current is None or _SEVERITY[item.conflict_type] < _SEVERITY[current]:
                entry.conflict_type = item.conflict_type.value
            entry.has_conflict = True

    db.add_all(rows)
    db.flush()
    if rows:
        logger.info(
            "Detected %d conflict(s) for %s semester %s across %d entries",
            len(rows),
            academic_year,
            semester,
            len(entries),
        )
    return rows


def list_term_conflicts(
    db: Session,
    academic_year: str,
    semester: int,
    *,
    include_resolved: bool = True,
) -> list[Conflict]:
    query = select(Conflict).where(Conflict.academic_year == academic_year, Conflict.semester == semester)
    if not include_resolved:
        query = query.where(Conflict.resolved.is_(False))
    return list(db.execute(query.order_by(Conflict.created_at, Conflict.id)).scalars())


def resolve_conflict(db: Session, conflict_id: str, notes: str | None = None) -> Conflict:
    conflict = db.get(Conflict, conflict_id)
    if conflict is None:
        raise ResourceNotFoundError("Conflict", conflict_id)
    conflict.resolved = True
    conflict.resolution_notes = notes
    db.commit()
    db.refresh(conflict)
    logger.info("Conflict %s marked resolved", conflict_id)
    return conflict
