"""Unit tests for the migration_logging module."""

from __future__ import annotations

import logging
from unittest.mock import patch

from cord_migrator.core.migration_logging import (
    log_migration_failure,
    log_migration_success,
)
from cord_migrator.core.migrator import MigrationResult
from cord_migrator.core.stats import MigrationStats

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result(**stats: int) -> MigrationResult:
    return MigrationResult(
        success=True,
        environment="staging",
        source_stats={"orgs": 1, "threads": 3},
        destination_stats=MigrationStats(**stats),
        duration=90.0,
    )


def _messages(mock_log) -> list[str]:
    return [c.args[1] for c in mock_log.call_args_list]


# ---------------------------------------------------------------------------
# log_migration_success
# ---------------------------------------------------------------------------


class TestLogMigrationSuccess:
    def test_clean_run(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_success(_result(rooms_created=1, threads_created=2))

        messages = _messages(mock_log)
        assert "[staging] CORD-TO-LIVEBLOCKS MIGRATION COMPLETED" in messages
        assert "Duration: 1.5 minutes (90.0 seconds)" in messages
        assert "Cord threads: 3" in messages
        assert "Threads created: 2" in messages
        assert messages[-1] == "No issues detected"

    def test_nothing_to_migrate_is_a_warning(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_success(_result())

        first = mock_log.call_args_list[0]
        assert first.args[0] == logging.WARNING
        assert "FOUND NOTHING TO MIGRATE" in first.args[1]

    def test_failures_point_to_audit_log(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_success(_result(rooms_created=1, comments_failed=2))

        messages = _messages(mock_log)
        assert "Comments failed: 2" in messages
        assert "audit log" in messages[-1]

    def test_skips_only(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_success(_result(rooms_created=1, threads_skipped=4))

        assert "skipped items" in _messages(mock_log)[-1]

    def test_stat_context_is_structured(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_success(_result(rooms_created=1, reactions_created=5))

        reaction_call = next(
            c for c in mock_log.call_args_list if c.args[1] == "Reactions created: 5"
        )
        assert reaction_call.kwargs == {"stat": "reactions_created", "count": 5}


# ---------------------------------------------------------------------------
# log_migration_failure
# ---------------------------------------------------------------------------


class TestLogMigrationFailure:
    def test_logs_exception_details(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            log_migration_failure("production", RuntimeError("boom"), 12.0)

        messages = _messages(mock_log)
        assert messages[0] == "[production] CORD-TO-LIVEBLOCKS MIGRATION FAILED"
        assert "Exception: RuntimeError: boom" in messages
        assert all(c.args[0] == logging.ERROR for c in mock_log.call_args_list)
        assert "run the command again" in messages[-1]

    def test_traceback_included_inside_handler(self):
        with patch("cord_migrator.core.migration_logging.log_with_context") as mock_log:
            try:
                raise ValueError("bad data")
            except ValueError as e:
                log_migration_failure("staging", e, 1.0)

        assert any(m.startswith("Traceback:") for m in _messages(mock_log))
