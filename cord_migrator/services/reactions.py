"""
Reaction attachment for migrated comments.

Reactions are best effort: a reaction that cannot be attributed or fails to
attach is logged and counted, and never affects the comment it belongs to.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import emoji

from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import APIError
from cord_migrator.types import SourceMessage, SourceReaction
from cord_migrator.utils.batching import ThrottledBatchRunner
from cord_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from cord_migrator.core.context import MigrationContext
    from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter


def normalize_emoji(value: str) -> str:
    """Turn ``:alias:`` reactions into unicode; unicode passes through."""
    return emoji.emojize(value.strip(), language="alias")


async def attach_reactions(
    ctx: MigrationContext,
    adapter: LiveblocksAdapter,
    room_id: str,
    thread_id: str,
    comment_id: str,
    message: SourceMessage,
) -> MigrationStats:
    """Attach a Cord message's reactions to the comment created from it.

    Args:
        ctx: Immutable migration context.
        adapter: Liveblocks API adapter.
        room_id: Liveblocks room holding the thread.
        thread_id: Liveblocks thread holding the comment.
        comment_id: Liveblocks comment to react to.
        message: The Cord message the comment was created from.

    Returns:
        Stats with ``reactions_created`` / ``reactions_skipped`` / ``reactions_failed``.
    """
    reactions = ctx.reactions_for(message.id)
    if not reactions:
        return MigrationStats()

    valid: list[tuple[SourceReaction, str]] = []
    for reaction in reactions:
        user_id = ctx.user_resolver.get_external_id(reaction.user_id)
        if user_id and reaction.emoji:
            valid.append((reaction, user_id))

    skipped = len(reactions) - len(valid)
    if not valid:
        log_with_context(
            logging.WARNING,
            f"{ctx.log_prefix}No valid reactions found for message {message.id}",
            cord_message_id=message.id,
            comment_id=comment_id,
            reaction_count=len(reactions),
        )
        return MigrationStats(reactions_skipped=skipped)

    async def _add(item: tuple[SourceReaction, str]) -> bool | None:
        reaction, user_id = item
        try:
            await adapter.add_comment_reaction(
                room_id,
                thread_id,
                comment_id,
                emoji=normalize_emoji(reaction.emoji),
                user_id=user_id,
                created_at=reaction.timestamp.isoformat(),
            )
            return True
        except APIError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to add reaction {reaction.emoji} to comment {comment_id}: {e}",
                comment_id=comment_id,
                cord_message_id=message.id,
                status=e.status,
            )
            return None

    runner = ThrottledBatchRunner(
        ctx.config.batching.reaction_width, ctx.config.batching.delay, "reaction"
    )
    results = await runner.run(valid, _add)
    created = sum(1 for result in results if result)

    return MigrationStats(
        reactions_created=created,
        reactions_skipped=skipped,
        reactions_failed=len(valid) - created,
    )
