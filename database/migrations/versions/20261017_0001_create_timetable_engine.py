"""create timetable engine tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None

conflict_type_enum = sa.Enum("ROOM", "LECTURER", "AVAILABILITY", name="conflict_type")
generation_job_status_enum = sa.Enum(
    "queued", "running", "succeeded", "failed", "cancelled", name="generation_job_status"
)


def upgrade() -> None:
    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "lecturers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "lecturer_availability",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "lecturer_id",
            sa.String(length=36),
            sa.ForeignKey("lecturers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day", sa.String(length=10), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
    )
    op.create_index("ix_lecturer_availability_lecturer_id", "lecturer_availability", ["lecturer_id"])

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("expected_enrollment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("contact_hours", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("lecturer_id", sa.String(length=36), nullable=True),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_courses_code", "courses", ["code"])
    op.create_index("ix_courses_lecturer_id", "courses", ["lecturer_id"])

    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("label", sa.String(length=50), nullable=True),
    )

    op.create_table(
        "timetable_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("room_id", sa.String(length=36), nullable=False),
        sa.Column("lecturer_id", sa.String(length=36), nullable=False),
        sa.Column("day", sa.String(length=10), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("has_conflict", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("conflict_type", sa.String(length=20), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("generation_job_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_timetable_entries_term", "timetable_entries", ["academic_year", "semester"])

    op.create_table(
        "conflicts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "entry1_id",
            sa.String(length=36),
            sa.ForeignKey("timetable_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "entry2_id",
            sa.String(length=36),
            sa.ForeignKey("timetable_entries.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("conflict_type", conflict_type_enum, nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_conflicts_entry1_id", "conflicts", ["entry1_id"])
    op.create_index("ix_conflicts_entry2_id", "conflicts", ["entry2_id"])
    op.create_index("ix_conflicts_academic_year", "conflicts", ["academic_year"])
    op.create_index("ix_conflicts_semester", "conflicts", ["semester"])

    op.create_table(
        "timetable_generation_metrics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("method", sa.String(length=20), nullable=False, server_default="unknown"),
        sa.Column("duration_seconds", sa.Float(), nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("entries_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conflicts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_generation_metrics_method_success", "timetable_generation_metrics", ["method", "success"]
    )
    op.create_index(
        "ix_generation_metrics_term", "timetable_generation_metrics", ["academic_year", "semester"]
    )

    op.create_table(
        "timetable_generation_settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("population_size", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("generations", sa.Integer(), nullable=False, server_default="200"),
        sa.Column("mutation_rate", sa.Float(), nullable=False, server_default="0.05"),
        sa.Column("crossover_rate", sa.Float(), nullable=False, server_default="0.85"),
        sa.Column("elite_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("tournament_size", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("stagnation_limit", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("initial_bias", sa.Float(), nullable=False, server_default="0.8"),
        sa.Column("evaluation_workers", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("strict_availability", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_lecturer_sessions_per_day", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("underutilization_ratio", sa.Float(), nullable=False, server_default="0.4"),
        sa.Column("random_seed", sa.Integer(), nullable=True),
        sa.Column("objective_weights", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "generation_jobs",
        sa.Column("job_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("academic_year", sa.String(length=20), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("status", generation_job_status_enum, nullable=False, server_default="queued"),
        sa.Column("method", sa.String(length=20), nullable=True),
        sa.Column("entries_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_generation_jobs_academic_year", "generation_jobs", ["academic_year"])
    op.create_index("ix_generation_jobs_semester", "generation_jobs", ["semester"])
    op.create_index("ix_generation_jobs_status", "generation_jobs", ["status"])


def downgrade() -> None:
    op.drop_index("ix_generation_jobs_status", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_semester", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_academic_year", table_name="generation_jobs")
    op.drop_table("generation_jobs")
    op.drop_table("timetable_generation_settings")
    op.drop_index("ix_generation_metrics_term", table_name="timetable_generation_metrics")
    op.drop_index("ix_generation_metrics_method_success", table_name="timetable_generation_metrics")
    op.drop_table("timetable_generation_metrics")
    op.drop_index("ix_conflicts_semester", table_name="conflicts")
    op.drop_index("ix_conflicts_academic_year", table_name="conflicts")
    op.drop_index("ix_conflicts_entry2_id", table_name="conflicts")
    op.drop_index("ix_conflicts_entry1_id", table_name="conflicts")
    op.drop_table("conflicts")
    op.drop_index("ix_timetable_entries_term", table_name="timetable_entries")
    op.drop_table("timetable_entries")
    op.drop_table("time_slots")
    op.drop_index("ix_courses_lecturer_id", table_name="courses")
    op.drop_index("ix_courses_code", table_name="courses")
    op.drop_table("courses")
    op.drop_index("ix_lecturer_availability_lecturer_id", table_name="lecturer_availability")
    op.drop_table("lecturer_availability")
    op.drop_table("lecturers")
    op.drop_table("rooms")
    generation_job_status_enum.drop(op.get_bind(), checkfirst=True)
    conflict_type_enum.drop(op.get_bind(), checkfirst=True)
