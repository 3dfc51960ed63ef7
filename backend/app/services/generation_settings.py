from __future__ import annotations

from sqlalchemy.orm import Session

from app.models.timetable_generation import TimetableGenerationSettings
from app.schemas.generator import GenerationSettingsBase, GenerationSettingsOut, GenerationSettingsUpdate

SETTINGS_ROW_ID = 1


def default_generation_settings() -> GenerationSettingsBase:
    return GenerationSettingsBase()


def load_generation_settings(db: Session) -> GenerationSettingsOut:
    record = db.get(TimetableGenerationSettings, SETTINGS_ROW_ID)
    if record is None:
        defaults = default_generation_settings()
        return GenerationSettingsOut(id=SETTINGS_ROW_ID, **defaults.model_dump())
    return GenerationSettingsOut(
        id=record.id,
        population_size=record.population_size,
        generations=record.generations,
        mutation_rate=record.mutation_rate,
        crossover_rate=record.crossover_rate,
        elite_count=record.elite_count,
        tournament_size=record.tournament_size,
        stagnation_limit=record.stagnation_limit,
        initial_bias=record.initial_bias,
        evaluation_workers=record.evaluation_workers,
        strict_availability=record.strict_availability,
        max_lecturer_sessions_per_day=record.max_lecturer_sessions_per_day,
        underutilization_ratio=record.underutilization_ratio,
        random_seed=record.random_seed,
        # Rows written before a weight existed fall back to its default.
        objective_weights=record.objective_weights or {},
    )


def save_generation_settings(db: Session, payload: GenerationSettingsUpdate) -> GenerationSettingsOut:
    record = db.get(TimetableGenerationSettings, SETTINGS_ROW_ID)
    if record is None:
        record = TimetableGenerationSettings(id=SETTINGS_ROW_ID)
        db.add(record)

    data = payload.model_dump()
    for field_name, value in data.items():
        setattr(record, field_name, value)

    db.commit()
    db.refresh(record)
    return load_generation_settings(db)
