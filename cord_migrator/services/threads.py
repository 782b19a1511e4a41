"""
Thread reconciliation for a single Liveblocks room.

For every Cord thread that maps to the room, either creates the Liveblocks
thread (with its opening comment) and fills in the remaining comments, or,
when a Liveblocks thread already claims the Cord thread id, fills only the
comments missing from its ledger.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from cord_migrator.core.config import ResolvedThreadsPolicy
from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import APIError, UserMappingError
from cord_migrator.services.comment_body import build_comment_data
from cord_migrator.services.comments import create_comments
from cord_migrator.services.reactions import attach_reactions
from cord_migrator.services.source import parse_timestamp
from cord_migrator.types import (
    CommentData,
    CommentPair,
    ReconciledRoom,
    SourceMessage,
    SourceThread,
    ThreadData,
)
from cord_migrator.utils.batching import ThrottledBatchRunner
from cord_migrator.utils.ledger import ThreadMetadata, ledger_update, merge_ledger
from cord_migrator.utils.logging import log_failed_message, log_with_context

if TYPE_CHECKING:
    from cord_migrator.core.context import MigrationContext
    from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter
    from cord_migrator.services.user_resolver import UserResolver


def claimed_threads(threads: Sequence[ThreadData]) -> dict[str, ThreadData]:
    """Index destination threads by the Cord thread id recorded in their metadata."""
    claimed: dict[str, ThreadData] = {}
    for thread in threads:
        cord_thread_id = ThreadMetadata.from_metadata(
            thread.get("metadata")
        ).cord_thread_id
        if cord_thread_id and cord_thread_id not in claimed:
            claimed[cord_thread_id] = thread
    return claimed


def match_untracked_comments(
    messages: Sequence[SourceMessage],
    comments: Sequence[CommentData],
    ledger: Sequence[CommentPair],
    user_resolver: UserResolver,
) -> list[CommentPair]:
    """Pair Cord messages with destination comments the ledger does not record.

    A comment matches a message when its author and creation time equal the
    message's. The thread's first comment is always its opening comment, so
    when the earliest message is still unmatched it takes that comment.

    Args:
        messages: Eligible messages of the Cord thread, oldest first.
        comments: Comments currently in the destination thread, oldest first.
        ledger: Pairs already recorded on the thread.
        user_resolver: Maps Cord user ids to Liveblocks user ids.

    Returns:
        New pairs in message order.
    """
    recorded_messages = {pair.source_message_id for pair in ledger}
    recorded_comments = {pair.destination_comment_id for pair in ledger}
    untracked = [
        c for c in comments if c.get("id") and c["id"] not in recorded_comments
    ]
    if not untracked:
        return []

    by_author_and_time: dict[tuple[str, datetime], str] = {}
    for comment in untracked:
        created_at = parse_timestamp(comment.get("createdAt"))
        if comment.get("userId") and created_at is not None:
            by_author_and_time.setdefault(
                (comment["userId"], created_at), comment["id"]
            )

    pairs: list[CommentPair] = []
    taken: set[str] = set()
    for message in messages:
        if message.id in recorded_messages:
            continue
        user_id = user_resolver.get_external_id(message.author_id)
        comment_id = by_author_and_time.get((user_id, message.timestamp))
        if comment_id and comment_id not in taken:
            pairs.append(CommentPair(message.id, comment_id))
            taken.add(comment_id)

    first = messages[0] if messages else None
    opening_id = comments[0].get("id") if comments else None
    if (
        first is not None
        and first.id not in recorded_messages
        and first.id not in {pair.source_message_id for pair in pairs}
        and opening_id in {c["id"] for c in untracked}
        and opening_id not in taken
    ):
        pairs.insert(0, CommentPair(first.id, opening_id))
    return pairs


class ThreadReconciler:
    """Brings one reconciled room's threads in line with the Cord source."""

    def __init__(
        self,
        ctx: MigrationContext,
        adapter: LiveblocksAdapter,
        room: ReconciledRoom,
    ) -> None:
        self.ctx = ctx
        self.adapter = adapter
        self.room = room
        self.runner = ThrottledBatchRunner(
            ctx.config.batching.thread_width, ctx.config.batching.delay, "thread"
        )

    async def reconcile(self) -> MigrationStats:
        """Create missing threads and fill comment gaps in existing ones.

        Returns:
            Folded stats for every thread handled in the room.
        """
        ctx = self.ctx
        claimed = claimed_threads(self.room.threads)

        for cord_thread_id in claimed:
            if cord_thread_id not in ctx.threads_by_id:
                log_with_context(
                    logging.WARNING,
                    f"{ctx.log_prefix}Thread {claimed[cord_thread_id].get('id')} claims"
                    f" unknown Cord thread {cord_thread_id}, leaving it untouched",
                    room_id=self.room.id,
                    cord_thread_id=cord_thread_id,
                )

        stats = MigrationStats()
        candidates: list[SourceThread] = []
        existing: list[tuple[SourceThread, ThreadData]] = []

        for thread in ctx.threads_for_room(self.room.room_key):
            if not ctx.eligible_messages_for(thread.id):
                log_with_context(
                    logging.DEBUG,
                    f"{ctx.log_prefix}Skipping thread {thread.id}: no messages with an author",
                    cord_thread_id=thread.id,
                )
                stats += MigrationStats(threads_skipped=1)
            elif (
                thread.is_resolved
                and ctx.config.resolved_threads == ResolvedThreadsPolicy.SKIP
            ):
                log_with_context(
                    logging.DEBUG,
                    f"{ctx.log_prefix}Skipping resolved thread {thread.id}",
                    cord_thread_id=thread.id,
                )
                stats += MigrationStats(threads_skipped=1)
            elif thread.id in claimed:
                existing.append((thread, claimed[thread.id]))
            else:
                candidates.append(thread)

        candidates.sort(key=lambda t: t.created_timestamp, reverse=True)

        if candidates:
            log_with_context(
                logging.INFO,
                f"{ctx.log_prefix}Creating {len(candidates)} threads in room {self.room.id}",
                room_id=self.room.id,
            )
        created = await self.runner.run(candidates, self.create_thread)
        filled = await self.runner.run(existing, self._fill_existing)

        return stats + MigrationStats.total(created) + MigrationStats.total(filled)

    async def create_thread(self, thread: SourceThread) -> MigrationStats:
        """Create a Liveblocks thread for a Cord thread that has none yet."""
        ctx = self.ctx
        messages = ctx.eligible_messages_for(thread.id)
        first, rest = messages[0], messages[1:]

        try:
            opening = build_comment_data(first, ctx.user_resolver)
        except UserMappingError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Cannot open thread {thread.id}: {e}",
                cord_thread_id=thread.id,
                room_id=self.room.id,
            )
            self._audit(first, str(e))
            return MigrationStats(threads_failed=1, comments_failed=1)

        metadata = ThreadMetadata(
            cord_thread_id=thread.id,
            cord_org_id=thread.org_id,
            cord_created_timestamp=thread.created_timestamp.isoformat(),
            location=dict(thread.location or {}),
        ).to_metadata(include_ledger=False)

        try:
            created = await self.adapter.create_thread(self.room.id, opening, metadata)
        except APIError as e:
            if e.is_conflict:
                return await self._reuse_conflicting(thread)
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to create thread for Cord thread {thread.id}: {e}",
                cord_thread_id=thread.id,
                room_id=self.room.id,
                status=e.status,
            )
            self._audit(first, f"Thread creation failed: {e.message}", e.status)
            return MigrationStats(threads_failed=1, comments_failed=1)

        thread_id = created["id"]
        opening_comment_id = created["comments"][0]["id"]
        log_with_context(
            logging.DEBUG,
            f"{ctx.log_prefix}Created thread {thread_id} for Cord thread {thread.id}",
            cord_thread_id=thread.id,
            thread_id=thread_id,
            room_id=self.room.id,
        )

        opening_pair = CommentPair(first.id, opening_comment_id)
        stats = MigrationStats(threads_created=1, comments_created=1)
        opening_saved = await self._persist_ledger(thread_id, [opening_pair])
        stats += opening_saved
        stats += await attach_reactions(
            ctx, self.adapter, self.room.id, thread_id, opening_comment_id, first
        )
        stats += await self._resolve(thread, thread_id)

        new_pairs, comment_stats = await create_comments(
            ctx, self.adapter, self.room, thread_id, rest, [opening_pair]
        )
        stats += comment_stats

        ledger = merge_ledger([opening_pair], new_pairs)
        if new_pairs or opening_saved.ledger_writes_failed:
            stats += await self._persist_ledger(thread_id, ledger)
        self._check_counts(thread, ledger, messages)
        return stats

    async def _reuse_conflicting(self, thread: SourceThread) -> MigrationStats:
        """Adopt the thread another writer created for this Cord thread."""
        ctx = self.ctx
        try:
            threads = await self.adapter.get_threads(self.room.id)
        except APIError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to re-fetch threads of room {self.room.id}: {e}",
                room_id=self.room.id,
                status=e.status,
            )
            return MigrationStats(threads_failed=1)

        existing = claimed_threads(threads).get(thread.id)
        if existing is None:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Thread for Cord thread {thread.id} conflicted but"
                " could not be found",
                cord_thread_id=thread.id,
                room_id=self.room.id,
            )
            return MigrationStats(threads_failed=1)

        log_with_context(
            logging.INFO,
            f"{ctx.log_prefix}Reusing thread {existing['id']} for Cord thread {thread.id}",
            cord_thread_id=thread.id,
            thread_id=existing["id"],
        )
        return MigrationStats(threads_reused=1) + await self.fill_thread(
            thread, existing
        )

    async def _fill_existing(
        self, item: tuple[SourceThread, ThreadData]
    ) -> MigrationStats:
        thread, destination = item
        return MigrationStats(threads_existing=1) + await self.fill_thread(
            thread, destination
        )

    async def fill_thread(
        self, thread: SourceThread, destination: ThreadData
    ) -> MigrationStats:
        """Create the comments a destination thread's ledger is missing."""
        ctx = self.ctx
        messages = ctx.eligible_messages_for(thread.id)
        thread_id = destination["id"]
        ledger = ThreadMetadata.from_metadata(destination.get("metadata")).ledger

        recovered = match_untracked_comments(
            messages, destination.get("comments") or [], ledger, ctx.user_resolver
        )
        if recovered:
            log_with_context(
                logging.INFO,
                f"{ctx.log_prefix}Recovered {len(recovered)} unrecorded comments in"
                f" thread {thread_id}",
                cord_thread_id=thread.id,
                thread_id=thread_id,
            )
            ledger = merge_ledger(ledger, recovered)

        new_pairs, stats = await create_comments(
            ctx, self.adapter, self.room, thread_id, messages, ledger
        )

        if not destination.get("resolved"):
            stats += await self._resolve(thread, thread_id)

        if new_pairs or recovered:
            ledger = merge_ledger(ledger, new_pairs)
            stats += await self._persist_ledger(thread_id, ledger)
        self._check_counts(thread, ledger, messages)
        return stats

    async def _resolve(self, thread: SourceThread, thread_id: str) -> MigrationStats:
        ctx = self.ctx
        if not thread.is_resolved:
            return MigrationStats()

        resolver_id = ctx.user_resolver.get_external_id(thread.resolver_user_id)
        if not resolver_id:
            log_with_context(
                logging.WARNING,
                f"{ctx.log_prefix}Thread {thread.id} is resolved but its resolver"
                " could not be identified",
                cord_thread_id=thread.id,
            )
            return MigrationStats()

        try:
            await self.adapter.mark_thread_as_resolved(
                self.room.id, thread_id, resolver_id
            )
        except APIError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to resolve thread {thread_id}: {e}",
                thread_id=thread_id,
                room_id=self.room.id,
                status=e.status,
            )
            return MigrationStats(resolutions_failed=1)
        return MigrationStats()

    async def _persist_ledger(
        self, thread_id: str, ledger: Sequence[CommentPair]
    ) -> MigrationStats:
        ctx = self.ctx
        try:
            await self.adapter.edit_thread_metadata(
                self.room.id,
                thread_id,
                ledger_update(ledger),
                user_id=ctx.config.system_user_id,
                updated_at=datetime.now(timezone.utc).isoformat(),
            )
        except APIError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to save comment ledger on thread {thread_id}: {e}",
                thread_id=thread_id,
                room_id=self.room.id,
                status=e.status,
            )
            return MigrationStats(ledger_writes_failed=1)
        return MigrationStats()

    def _check_counts(
        self,
        thread: SourceThread,
        ledger: Sequence[CommentPair],
        messages: Sequence[SourceMessage],
    ) -> None:
        migrated = {pair.source_message_id for pair in ledger}
        missing = [m.id for m in messages if m.id not in migrated]
        if missing:
            log_with_context(
                logging.WARNING,
                f"{self.ctx.log_prefix}Failed to migrate all comments of thread {thread.id}:"
                f" {len(messages) - len(missing)}/{len(messages)}",
                cord_thread_id=thread.id,
                room_id=self.room.id,
            )

    def _audit(
        self, message: SourceMessage, reason: str, status: int | None = None
    ) -> None:
        log_failed_message(
            reason,
            message_id=message.id,
            thread_id=message.thread_id,
            room_id=self.room.id,
            org_external_id=self.room.org_external_id,
            author_id=message.author_id,
            content=message.content,
            location=self.room.location,
            status=status,
        )


async def reconcile_threads(
    ctx: MigrationContext, adapter: LiveblocksAdapter, room: ReconciledRoom
) -> MigrationStats:
    """Reconcile all threads of one room. See :class:`ThreadReconciler`."""
    return await ThreadReconciler(ctx, adapter, room).reconcile()
