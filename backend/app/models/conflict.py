import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class ConflictType(str, Enum):
    room = "ROOM"
    lecturer = "LECTURER"
    availability = "AVAILABILITY"


class Conflict(Base):
    __tablename__ = "conflicts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entry1_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("timetable_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Availability conflicts involve a single entry.
    entry2_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("timetable_entries.id", ondelete="CASCADE"), nullable=True, index=True
    )
    conflict_type: Mapped[ConflictType] = mapped_column(
        SAEnum(ConflictType, name="conflict_type", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    semester: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
