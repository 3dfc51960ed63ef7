from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError
from app.models.course import Course
from app.models.lecturer import Lecturer
from app.models.room import Room
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import TimetableEntry
from app.schemas.common import normalize_day, parse_time_to_minutes
from app.schemas.conflict import AlternativeSuggestion, ResolverWeights
from app.services.constraints import fits_capacity, is_within_availability

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryContext:
    """What the resolver needs to know about the entry being relocated."""

    entry_id: str
    lecturer_id: str
    day: str
    time_slot: Any
    expected_enrollment: int = 0
    building: str | None = None


class ConflictResolver:
    """Scores every (day, slot, room) alternative for one entry. Read-only."""

    def __init__(
        self,
        *,
        time_slots: Sequence[Any],
        rooms: Sequence[Any],
        lecturers_by_id: Mapping[str, Any],
        days: Sequence[str],
        weights: ResolverWeights | None = None,
    ) -> None:
        self.time_slots = sorted(time_slots, key=lambda slot: parse_time_to_minutes(slot.start_time))
        self.rooms = list(rooms)
        self.lecturers_by_id = dict(lecturers_by_id)
        self.days = [normalize_day(day) for day in days]
        self.weights = weights or ResolverWeights()

    def _proximity(self, candidate: Any, original: Any) -> float:
        distance = abs(parse_time_to_minutes(candidate.start_time) - parse_time_to_minutes(original.start_time))
        for max_minutes, points in self.weights.proximity_tiers:
            if distance <= max_minutes:
                return points
        return 0.0

    def score(self, context: EntryContext, day: str, slot: Any, room: Any) -> float:
        weights = self.weights
        total = 0.0
        if is_within_availability(self.lecturers_by_id.get(context.lecturer_id), day, slot):
            total += weights.lecturer_available
        if fits_capacity(room, context):
            total += weights.capacity_fit
        total += self._proximity(slot, context.time_slot)
        if day == normalize_day(context.day):
            total += weights.same_day
        if getattr(room, "building", None) == context.building:
            total += weights.same_building
        return total

    def reason(self, score: float) -> str:
        reasons = []
        if score >= self.weights.optimal_threshold:
            reasons.append("Optimal match with high compatibility")
        if score >= self.weights.available_threshold:
            reasons.append("Lecturer is available")
        if score >= self.weights.capacity_threshold:
            reasons.append("Room capacity is suitable")
        return ", ".join(reasons)

    def suggest_alternatives(
        self,
        context: EntryContext,
        known_conflicts: Iterable[Any] = (),
    ) -> list[AlternativeSuggestion]:
        """Return at most ``max_suggestions`` placements with a positive score, best first.

        ``known_conflicts`` is accepted for callers that already hold them; it does not
        change scoring.
        """
        known = list(known_conflicts)
        scored: list[AlternativeSuggestion] = []
        for day in self.days:
            for slot in self.time_slots:
                for room in self.rooms:
                    value = self.score(context, day, slot, room)
                    if value <= 0:
                        continue
                    scored.append(
                        AlternativeSuggestion(
                            day=day,
                            time_slot_id=str(slot.id),
                            room_id=str(room.id),
                            score=value,
                            reason=self.reason(value),
                        )
                    )

        # sorted() is stable, so ties keep day/slot/room catalog order.
        ranked = sorted(scored, key=lambda item: item.score, reverse=True)
        top = ranked[: self.weights.max_suggestions]
        logger.debug(
            "Scored %d alternatives for entry %s (%d known conflicts); returning %d",
            len(scored),
            context.entry_id,
            len(known),
            len(top),
        )
        return top

    @classmethod
    def from_session(
        cls,
        db: Session,
        *,
        days: Sequence[str] | None = None,
        weights: ResolverWeights | None = None,
    ) -> "ConflictResolver":
        lecturers = db.execute(select(Lecturer)).scalars().all()
        return cls(
            time_slots=db.execute(select(TimeSlot)).scalars().all(),
            rooms=db.execute(select(Room).order_by(Room.name)).scalars().all(),
            lecturers_by_id={item.id: item for item in lecturers},
            days=days or get_settings().working_days,
            weights=weights,
        )


def entry_context_from_row(db: Session, entry_id: str) -> EntryContext:
    entry = db.get(TimetableEntry, entry_id)
    if entry is None:
        raise ResourceNotFoundError("Timetable entry", entry_id)
    slot = db.get(TimeSlot, entry.time_slot_id)
    if slot is None:
        raise ResourceNotFoundError("Time slot", entry.time_slot_id)
    course = db.get(Course, entry.course_id)
    room = db.get(Room, entry.room_id)
    return EntryContext(
        entry_id=entry.id,
        lecturer_id=entry.lecturer_id,
        day=entry.day,
        time_slot=slot,
        expected_enrollment=course.expected_enrollment if course is not None else 0,
        building=room.building if room is not None else None,
    )
