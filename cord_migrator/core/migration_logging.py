"""
Migration success/failure logging for the Cord to Liveblocks migration tool.

Kept apart from ``migrator.py`` so the orchestrator stays focused on control
flow. Each summary line carries its statistic as structured context so it
shows up as a field in JSON log output.
"""

from __future__ import annotations

import logging
import traceback
from typing import TYPE_CHECKING

from cord_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from cord_migrator.core.migrator import MigrationResult


def log_migration_success(result: MigrationResult) -> None:
    """Log final migration status with a summary of what was migrated.

    Args:
        result: The successful migration result.
    """
    stats = result.destination_stats
    duration = result.duration
    prefix = f"[{result.environment}] "

    no_work_done = stats.rooms == 0 and stats.threads == 0
    if no_work_done:
        log_with_context(
            logging.WARNING,
            f"{prefix}CORD-TO-LIVEBLOCKS MIGRATION FOUND NOTHING TO MIGRATE",
            outcome="no_work",
        )
    else:
        log_with_context(
            logging.INFO,
            f"{prefix}CORD-TO-LIVEBLOCKS MIGRATION COMPLETED",
            outcome="success",
        )

    log_with_context(
        logging.INFO,
        f"Duration: {duration / 60:.1f} minutes ({duration:.1f} seconds)",
        duration_seconds=duration,
    )

    for name, count in result.source_stats.items():
        log_with_context(
            logging.INFO,
            f"Cord {name}: {count}",
            stat=f"source_{name}",
            count=count,
        )

    for label, stat, count in (
        ("Rooms created", "rooms_created", stats.rooms_created),
        ("Rooms updated", "rooms_updated", stats.rooms_updated),
        ("Threads created", "threads_created", stats.threads_created),
        ("Threads already migrated", "threads_existing", stats.threads_existing),
        ("Comments created", "comments_created", stats.comments_created),
        ("Comments already migrated", "comments_existing", stats.comments_existing),
        ("Reactions created", "reactions_created", stats.reactions_created),
    ):
        log_with_context(logging.INFO, f"{label}: {count}", stat=stat, count=count)

    has_issues = False
    for label, stat, count in (
        ("Rooms skipped", "rooms_skipped", stats.rooms_skipped),
        ("Rooms failed", "rooms_failed", stats.rooms_failed),
        ("Threads skipped", "threads_skipped", stats.threads_skipped),
        ("Threads failed", "threads_failed", stats.threads_failed),
        ("Comments failed", "comments_failed", stats.comments_failed),
        ("Reactions failed", "reactions_failed", stats.reactions_failed),
        ("Resolutions failed", "resolutions_failed", stats.resolutions_failed),
        ("Ledger writes failed", "ledger_writes_failed", stats.ledger_writes_failed),
    ):
        if count:
            has_issues = True
            log_with_context(
                logging.WARNING, f"{label}: {count}", stat=stat, count=count
            )

    if stats.has_failures:
        log_with_context(
            logging.WARNING,
            "Migration completed with failures. Failed messages are listed in"
            " the audit log; run the command again to retry them.",
        )
    elif has_issues:
        log_with_context(
            logging.WARNING,
            "Migration completed with some skipped items. Check the detailed logs.",
        )
    else:
        log_with_context(logging.INFO, "No issues detected")


def log_migration_failure(
    environment: str, exception: BaseException, duration: float
) -> None:
    """Log final migration failure status with error details.

    Args:
        environment: The environment being migrated.
        exception: The exception that ended the run.
        duration: Seconds elapsed before the failure.
    """
    log_with_context(
        logging.ERROR,
        f"[{environment}] CORD-TO-LIVEBLOCKS MIGRATION FAILED",
        outcome="failed",
        exception_type=type(exception).__name__,
        exception_message=str(exception),
    )
    log_with_context(
        logging.ERROR,
        f"Exception: {type(exception).__name__}: {exception!s}",
        exception_type=type(exception).__name__,
        duration_seconds=duration,
    )
    log_with_context(
        logging.ERROR,
        f"Duration before failure: {duration / 60:.1f} minutes ({duration:.1f} seconds)",
        duration_seconds=duration,
    )

    tb = traceback.format_exc()
    if tb and tb.strip() != "NoneType: None":
        log_with_context(logging.ERROR, f"Traceback:\n{tb}")

    log_with_context(
        logging.ERROR,
        "Migration failed. Objects created so far are kept; run the command"
        " again to resume.",
    )
