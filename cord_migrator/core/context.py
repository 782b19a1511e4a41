"""Immutable migration context.

MigrationContext is a frozen dataclass that holds the configuration and the
loaded Cord snapshot for a migration run. It is created once by the
orchestrator and shared (read-only) with every reconciler, which is what
lets concurrent batches read source data without locking.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cord_migrator.core.config import MigrationConfig
from cord_migrator.types import (
    SourceMessage,
    SourceOrg,
    SourceReaction,
    SourceSnapshot,
    SourceThread,
)
from cord_migrator.utils.location import derive_room_key

if TYPE_CHECKING:
    from cord_migrator.services.user_resolver import UserResolver


def _index_messages(snapshot: SourceSnapshot) -> dict[str, list[SourceMessage]]:
    by_thread: dict[str, list[SourceMessage]] = defaultdict(list)
    for message in snapshot.messages:
        by_thread[message.thread_id].append(message)
    for messages in by_thread.values():
        messages.sort(key=lambda m: m.timestamp)
    return dict(by_thread)


def _index_threads_by_room(snapshot: SourceSnapshot) -> dict[str, list[SourceThread]]:
    by_room: dict[str, list[SourceThread]] = defaultdict(list)
    for thread in snapshot.threads:
        if thread.location:
            by_room[derive_room_key(thread.location)].append(thread)
    return dict(by_room)


def _index_reactions(snapshot: SourceSnapshot) -> dict[str, list[SourceReaction]]:
    by_message: dict[str, list[SourceReaction]] = defaultdict(list)
    for reaction in snapshot.reactions:
        by_message[reaction.message_id].append(reaction)
    return dict(by_message)


@dataclass(frozen=True)
class MigrationContext:
    """Immutable context for a migration run. Created once, shared everywhere."""

    config: MigrationConfig
    environment: str
    snapshot: SourceSnapshot
    user_resolver: UserResolver

    # Lookup indexes derived from the snapshot
    orgs_by_id: dict[str, SourceOrg] = field(default_factory=dict)
    threads_by_id: dict[str, SourceThread] = field(default_factory=dict)
    messages_by_thread: dict[str, list[SourceMessage]] = field(default_factory=dict)
    reactions_by_message: dict[str, list[SourceReaction]] = field(default_factory=dict)
    threads_by_room_key: dict[str, list[SourceThread]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        config: MigrationConfig,
        environment: str,
        snapshot: SourceSnapshot,
        user_resolver: UserResolver,
    ) -> MigrationContext:
        """Create a context with its lookup indexes populated."""
        return cls(
            config=config,
            environment=environment,
            snapshot=snapshot,
            user_resolver=user_resolver,
            orgs_by_id={org.id: org for org in snapshot.orgs},
            threads_by_id={thread.id: thread for thread in snapshot.threads},
            messages_by_thread=_index_messages(snapshot),
            reactions_by_message=_index_reactions(snapshot),
            threads_by_room_key=_index_threads_by_room(snapshot),
        )

    def messages_for(self, thread_id: str) -> list[SourceMessage]:
        """All messages of a thread, oldest first."""
        return self.messages_by_thread.get(thread_id, [])

    def eligible_messages_for(self, thread_id: str) -> list[SourceMessage]:
        """Messages that can become comments (they have an author), oldest first."""
        return [m for m in self.messages_for(thread_id) if m.author_id]

    def reactions_for(self, message_id: str) -> list[SourceReaction]:
        return self.reactions_by_message.get(message_id, [])

    def threads_for_room(self, room_key: str) -> list[SourceThread]:
        """Source threads whose Location derives to ``room_key``."""
        return self.threads_by_room_key.get(room_key, [])

    @property
    def unlocated_threads(self) -> list[SourceThread]:
        """Source threads with no Location; they cannot be placed in a room."""
        return [t for t in self.snapshot.threads if not t.location]

    @property
    def log_prefix(self) -> str:
        """Environment prefix for log messages, e.g. ``"[staging] "``."""
        return f"[{self.environment}] "
