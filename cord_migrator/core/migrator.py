"""
Main migrator for the Cord to Liveblocks migration tool
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from cord_migrator.core.config import MigrationConfig, ResolvedThreadsPolicy
from cord_migrator.core.context import MigrationContext
from cord_migrator.core.migration_logging import (
    log_migration_failure,
    log_migration_success,
)
from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import MigrationAbortedError
from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter
from cord_migrator.services.rooms import reconcile_rooms
from cord_migrator.services.source import SourceDataProvider
from cord_migrator.services.threads import reconcile_threads
from cord_migrator.services.user_resolver import UserResolver
from cord_migrator.types import ReconciledRoom
from cord_migrator.utils.batching import ThrottledBatchRunner
from cord_migrator.utils.logging import log_with_context


@dataclass
class MigrationResult:
    """Outcome of one migration run."""

    success: bool
    environment: str
    source_stats: Dict[str, int] = field(default_factory=dict)
    destination_stats: MigrationStats = field(default_factory=MigrationStats)
    duration: float = 0.0
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    unresolved_users: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Response payload for the HTTP entry point and the report."""
        if not self.success:
            return {
                "success": False,
                "environment": self.environment,
                "error": "Migration failed",
                "type": self.error_type,
                "message": self.error_message,
            }
        return {
            "success": True,
            "environment": self.environment,
            "sourceStats": dict(self.source_stats),
            "destinationStats": self.destination_stats.to_dict(),
        }


def expected_counts(ctx: MigrationContext) -> Dict[str, int]:
    """How many rooms, threads and comments a complete run would leave behind."""
    rooms = threads = comments = 0
    for room_threads in ctx.threads_by_room_key.values():
        migratable = 0
        for thread in room_threads:
            messages = ctx.eligible_messages_for(thread.id)
            if not messages:
                continue
            if (
                thread.is_resolved
                and ctx.config.resolved_threads == ResolvedThreadsPolicy.SKIP
            ):
                continue
            migratable += 1
            comments += len(messages)
        threads += migratable
        rooms += 1
    return {"rooms": rooms, "threads": threads, "comments": comments}


def log_mismatches(ctx: MigrationContext, stats: MigrationStats) -> None:
    """Warn about every level where fewer objects exist than the source needs."""
    expected = expected_counts(ctx)
    achieved = {
        "rooms": stats.rooms,
        "threads": stats.threads,
        "comments": stats.comments,
    }
    for level, count in expected.items():
        if achieved[level] < count:
            log_with_context(
                logging.WARNING,
                f"{ctx.log_prefix}Failed to migrate all {level}:"
                f" {achieved[level]}/{count}",
                level_name=level,
                expected=count,
                migrated=achieved[level],
            )


class CordToLiveblocksMigrator:
    """Migrates Cord threads, messages and reactions into Liveblocks."""

    def __init__(
        self,
        config: MigrationConfig,
        provider: SourceDataProvider,
        adapter: LiveblocksAdapter,
        environment: str,
        show_progress: bool = True,
    ):
        self.config = config
        self.provider = provider
        self.adapter = adapter
        self.environment = environment
        self.show_progress = show_progress

    async def migrate(self) -> MigrationResult:
        """Run the migration end to end.

        Per-item failures are logged and counted; only unexpected errors
        end the run, and they are reported as a failed result rather than
        raised. Nothing is rolled back.
        """
        start_time = time.time()
        log_prefix = f"[{self.environment}] "
        log_with_context(
            logging.INFO, f"{log_prefix}Starting Cord to Liveblocks migration"
        )

        try:
            snapshot = self.provider.load(self.environment)
            if not snapshot.orgs:
                raise MigrationAbortedError(
                    f"No active organizations found for {self.environment};"
                    " check include_orgs and exclude_orgs"
                )
            ctx = MigrationContext.build(
                self.config, self.environment, snapshot, UserResolver(snapshot)
            )

            log_with_context(logging.INFO, f"{log_prefix}Fetching Liveblocks rooms...")
            existing_rooms = await self.adapter.list_all_rooms()
            log_with_context(
                logging.INFO,
                f"{log_prefix}Found {len(existing_rooms)} existing rooms",
                room_count=len(existing_rooms),
            )

            with tqdm(
                total=len(ctx.threads_by_room_key),
                desc=f"{self.environment} - Rooms",
                unit="room",
                disable=not self.show_progress,
            ) as pbar:
                rooms, room_stats = await reconcile_rooms(
                    ctx, self.adapter, existing_rooms, pbar
                )

            thread_stats = await self._reconcile_threads(ctx, rooms)
            stats = room_stats + thread_stats
            log_mismatches(ctx, stats)

            result = MigrationResult(
                success=True,
                environment=self.environment,
                source_stats=snapshot.counts(),
                destination_stats=stats,
                duration=time.time() - start_time,
                unresolved_users=sorted(ctx.user_resolver.unresolved_users),
            )
            log_migration_success(result)
            return result
        except Exception as e:
            duration = time.time() - start_time
            log_migration_failure(self.environment, e, duration)
            return MigrationResult(
                success=False,
                environment=self.environment,
                duration=duration,
                error_type=type(e).__name__,
                error_message=str(e),
            )

    async def _reconcile_threads(
        self, ctx: MigrationContext, rooms: list[ReconciledRoom]
    ) -> MigrationStats:
        async def _room_threads(room: ReconciledRoom) -> MigrationStats:
            return await reconcile_threads(ctx, self.adapter, room)

        runner = ThrottledBatchRunner(
            self.config.batching.room_width, self.config.batching.delay, "room threads"
        )
        with tqdm(
            total=len(rooms),
            desc=f"{self.environment} - Threads",
            unit="room",
            disable=not self.show_progress,
        ) as pbar:
            results = await runner.run(rooms, _room_threads, pbar)
        return MigrationStats.total(results)


async def run_migration(
    config: MigrationConfig,
    provider: SourceDataProvider,
    secret: Optional[str] = None,
    adapter: Optional[LiveblocksAdapter] = None,
    show_progress: bool = True,
) -> MigrationResult:
    """Run a migration, opening a Liveblocks adapter unless one is given.

    Args:
        config: Migration configuration.
        provider: Source of the Cord snapshot.
        secret: Liveblocks secret key; read from the configured env var if omitted.
        adapter: An already opened adapter to use instead of creating one.
        show_progress: Whether to draw tqdm progress bars.

    Returns:
        The migration result.
    """
    if adapter is not None:
        environment = config.resolve_environment(secret)
        return await CordToLiveblocksMigrator(
            config, provider, adapter, environment, show_progress
        ).migrate()

    secret = secret or config.get_secret()
    environment = config.resolve_environment(secret)
    async with LiveblocksAdapter(
        secret,
        base_url=config.api_base_url,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
    ) as opened:
        return await CordToLiveblocksMigrator(
            config, provider, opened, environment, show_progress
        ).migrate()
