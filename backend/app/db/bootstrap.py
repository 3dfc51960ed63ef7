from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "time_slots": {"id", "start_time", "end_time"},
    "lecturer_availability": {"id", "lecturer_id", "day", "start_time", "end_time"},
    "timetable_entries": {
        "id",
        "course_id",
        "room_id",
        "lecturer_id",
        "day",
        "time_slot_id",
        "academic_year",
        "semester",
        "has_conflict",
        "conflict_type",
        "generation_job_id",
    },
    "conflicts": {"id", "entry1_id", "entry2_id", "conflict_type", "resolved", "academic_year", "semester"},
    "timetable_generation_metrics": {
        "id",
        "job_id",
        "method",
        "duration_seconds",
        "success",
        "entries_generated",
        "conflicts_count",
    },
}


def _assert_required_columns(bind: Engine) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility(bind: Engine | None = None) -> None:
    import app.models  # noqa: F401

    bind = bind or default_engine
    try:
        Base.metadata.create_all(bind=bind)
        _assert_required_columns(bind)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
