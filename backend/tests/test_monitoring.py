from sqlalchemy.exc import OperationalError

from app.services.monitoring import (
    performance_summary,
    recent_failures,
    recommend_method,
    record_generation_attempt,
)

YEAR = "2025/2026"


def record(session_factory, job_id, method, success, **extra):
    values = {"duration_seconds": 1.5, "entries_generated": 10 if success else 0, "academic_year": YEAR, "semester": 1}
    values.update(extra)
    return record_generation_attempt(session_factory, job_id, method=method, success=success, **values)


def test_performance_summary_by_method(session_factory, db_session):
    record(session_factory, "job-1", "genetic", True, conflicts_count=2, duration_seconds=2.0)
    record(session_factory, "job-2", "genetic", False, duration_seconds=4.0)
    record(session_factory, "job-3", "ai", True, entries_generated=20)

    summary = performance_summary(db_session)

    assert summary.genetic.total_attempts == 2
    assert summary.genetic.success_rate == 50.0
    assert summary.genetic.avg_duration == 3.0
    assert summary.genetic.avg_conflicts == 1.0
    assert summary.genetic.avg_entries == 5.0
    assert summary.ai.total_attempts == 1
    assert summary.ai.success_rate == 100.0
    assert summary.ai.avg_entries == 20.0


def test_empty_summary_is_zeroed(db_session):
    summary = performance_summary(db_session)
    assert summary.ai.total_attempts == 0
    assert summary.genetic.success_rate == 0.0


def test_recent_failures_are_newest_first_and_limited(session_factory, db_session):
    for index in range(12):
        record(session_factory, f"fail-{index}", "genetic", False, error_message=f"error {index}")
    record(session_factory, "ok", "genetic", True)

    failures = recent_failures(db_session)

    assert len(failures) == 10
    assert failures[0].job_id == "fail-11"
    assert all(item.job_id != "ok" for item in failures)
    assert len(recent_failures(db_session, limit=3)) == 3


def test_recommendation_defaults_to_remote(db_session):
    assert recommend_method(db_session, YEAR, 1) == "ai"


def test_recommendation_prefers_genetic_for_large_constraint_sets(db_session):
    assert recommend_method(db_session, YEAR, 1, constraint_count=51) == "genetic"
    assert recommend_method(db_session, YEAR, 1, constraint_count=50) == "ai"


def test_recommendation_after_repeated_remote_failures_for_term(session_factory, db_session):
    record(session_factory, "ai-fail-1", "ai", False)
    assert recommend_method(db_session, YEAR, 1) == "ai"

    record(session_factory, "ai-fail-2", "ai", False)
    assert recommend_method(db_session, YEAR, 1) == "genetic"
    assert recommend_method(db_session, YEAR, 2) == "ai"


def test_recommendation_when_remote_underperforms(session_factory, db_session):
    for index in range(11):
        record(session_factory, f"gen-{index}", "genetic", True, semester=3)
        # 4 of 11 remote runs succeed: about 36% against 100%.
        record(session_factory, f"ai-{index}", "ai", index < 4, semester=3 + index)

    assert recommend_method(db_session, YEAR, 1) == "genetic"


def test_recording_failure_is_logged_not_raised(caplog):
    def broken_factory():
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    assert record_generation_attempt(broken_factory, "job-x", method="genetic", duration_seconds=1, success=True) is None
    assert "Failed to record generation metrics" in caplog.text
