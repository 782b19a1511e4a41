"""
Comment creation for migrated threads.

Every Cord message becomes at most one Liveblocks comment. The thread's
ledger is consulted first, so a message that was migrated by an earlier run
is recognised (and verified to still exist) instead of being created again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import APIError, UserMappingError
from cord_migrator.services.comment_body import build_comment_data
from cord_migrator.services.reactions import attach_reactions
from cord_migrator.types import CommentPair, ReconciledRoom, SourceMessage
from cord_migrator.utils.batching import ThrottledBatchRunner
from cord_migrator.utils.ledger import find_pair
from cord_migrator.utils.logging import log_failed_message, log_with_context

if TYPE_CHECKING:
    from cord_migrator.core.context import MigrationContext
    from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter

CommentOutcome = Tuple[Optional[CommentPair], MigrationStats]


def _record_failure(
    room: ReconciledRoom,
    message: SourceMessage,
    reason: str,
    status: int | None = None,
) -> CommentOutcome:
    log_failed_message(
        reason,
        message_id=message.id,
        thread_id=message.thread_id,
        room_id=room.id,
        org_external_id=room.org_external_id,
        author_id=message.author_id,
        content=message.content,
        location=room.location,
        status=status,
    )
    return None, MigrationStats(comments_failed=1)


async def create_comment(
    ctx: MigrationContext,
    adapter: LiveblocksAdapter,
    room: ReconciledRoom,
    thread_id: str,
    message: SourceMessage,
    ledger: Sequence[CommentPair],
) -> CommentOutcome:
    """Ensure a Cord message exists as a comment in a Liveblocks thread.

    Args:
        ctx: Immutable migration context.
        adapter: Liveblocks API adapter.
        room: The reconciled room holding the thread.
        thread_id: Liveblocks thread id.
        message: Cord message to migrate.
        ledger: Pairs already recorded on the thread.

    Returns:
        ``(pair, stats)``; ``pair`` is None when the message was abandoned.
    """
    existing = find_pair(ledger, message.id)
    if existing:
        try:
            await adapter.get_comment(
                room.id, thread_id, existing.destination_comment_id
            )
            log_with_context(
                logging.DEBUG,
                f"{ctx.log_prefix}Message {message.id} already migrated as comment"
                f" {existing.destination_comment_id}",
                cord_message_id=message.id,
                comment_id=existing.destination_comment_id,
            )
            return existing, MigrationStats(comments_existing=1)
        except APIError as e:
            if not e.is_not_found:
                log_with_context(
                    logging.ERROR,
                    f"{ctx.log_prefix}Could not verify comment"
                    f" {existing.destination_comment_id} for message {message.id}: {e}",
                    cord_message_id=message.id,
                    room_id=room.id,
                    status=e.status,
                )
                return _record_failure(
                    room, message, f"Comment lookup failed: {e.message}", e.status
                )
            log_with_context(
                logging.INFO,
                f"{ctx.log_prefix}Comment {existing.destination_comment_id} recorded"
                f" for message {message.id} no longer exists, recreating",
                cord_message_id=message.id,
                room_id=room.id,
            )

    try:
        data = build_comment_data(message, ctx.user_resolver)
    except UserMappingError as e:
        log_with_context(
            logging.ERROR,
            f"{ctx.log_prefix}{e}",
            cord_message_id=message.id,
            room_id=room.id,
        )
        return _record_failure(room, message, str(e))

    try:
        comment = await adapter.create_comment(room.id, thread_id, data)
    except APIError as e:
        log_with_context(
            logging.ERROR,
            f"{ctx.log_prefix}Failed to create comment for message {message.id}: {e}",
            cord_message_id=message.id,
            room_id=room.id,
            status=e.status,
        )
        return _record_failure(
            room, message, f"Comment creation failed: {e.message}", e.status
        )

    reaction_stats = await attach_reactions(
        ctx, adapter, room.id, thread_id, comment["id"], message
    )
    pair = CommentPair(message.id, comment["id"])
    return pair, MigrationStats(comments_created=1) + reaction_stats


async def create_comments(
    ctx: MigrationContext,
    adapter: LiveblocksAdapter,
    room: ReconciledRoom,
    thread_id: str,
    messages: Sequence[SourceMessage],
    ledger: Sequence[CommentPair],
) -> tuple[list[CommentPair], MigrationStats]:
    """Run :func:`create_comment` over messages in throttled batches.

    Returns:
        Pairs that are not yet in ``ledger`` (in message order) and the
        folded stats.
    """
    if not messages:
        return [], MigrationStats()

    async def _create(message: SourceMessage) -> CommentOutcome:
        return await create_comment(ctx, adapter, room, thread_id, message, ledger)

    runner = ThrottledBatchRunner(
        ctx.config.batching.comment_width, ctx.config.batching.delay, "comment"
    )
    outcomes = await runner.run(messages, _create)

    known = set(ledger)
    new_pairs = []
    for outcome in outcomes:
        pair = outcome[0] if outcome else None
        if pair is not None and pair not in known:
            new_pairs.append(pair)
    stats = MigrationStats.total(outcome[1] for outcome in outcomes if outcome)
    return new_pairs, stats
