"""
Room reconciliation.

Groups Cord threads by the room their Location derives to, resolves the
organization that owns each room and makes sure a Liveblocks room with the
right access rules and metadata exists for it.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from cord_migrator.constants import ROOM_WRITE_PERMISSION
from cord_migrator.core.stats import MigrationStats
from cord_migrator.exceptions import APIError
from cord_migrator.types import (
    Location,
    ReconciledRoom,
    RoomData,
    RoomParams,
    SourceOrg,
    SourceThread,
)
from cord_migrator.utils.batching import ThrottledBatchRunner
from cord_migrator.utils.location import derive_room_key, location_from_metadata
from cord_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from cord_migrator.core.context import MigrationContext
    from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter

RoomOutcome = Tuple[Optional[ReconciledRoom], MigrationStats]

ACTIVE_ORG_STATE = "active"


def index_existing_rooms(rooms: Sequence[RoomData]) -> dict[str, RoomData]:
    """Index destination rooms by Room Key.

    A room is found under its own id and, when its metadata holds a
    Location, under the key that Location derives to.
    """
    indexed: dict[str, RoomData] = {}
    for room in rooms:
        indexed.setdefault(room["id"], room)
        location = location_from_metadata(room.get("metadata"))
        if location:
            indexed.setdefault(derive_room_key(location), room)
    return indexed


def resolve_owner_org_id(
    threads: Sequence[SourceThread],
) -> tuple[str | None, set[str]]:
    """Pick the organization that owns a room by majority vote.

    Ties go to the organization that appears first.

    Returns:
        ``(org_id, all_org_ids)``; ``org_id`` is None when no thread has one.
    """
    org_ids = [t.org_id for t in threads if t.org_id]
    if not org_ids:
        return None, set()

    votes = Counter(org_ids)
    winner = max(votes, key=lambda org_id: (votes[org_id], -org_ids.index(org_id)))
    return winner, set(votes)


def build_room_params(
    ctx: MigrationContext, org: SourceOrg, location: Location
) -> RoomParams:
    """Access rules and metadata for a migrated room."""
    access = ctx.config.room_access
    return {
        "defaultAccesses": [],
        "groupsAccesses": {
            f"{access.org_group_prefix}{org.external_id}": [ROOM_WRITE_PERMISSION],
            access.internal_group: [ROOM_WRITE_PERMISSION],
        },
        "metadata": dict(location),
    }


def group_threads_by_room(
    ctx: MigrationContext,
) -> list[tuple[str, list[SourceThread]]]:
    """Non-empty thread groups per Room Key, in first-appearance order."""
    return [(key, threads) for key, threads in ctx.threads_by_room_key.items() if threads]


class RoomReconciler:
    """Creates or updates one Liveblocks room per Room Key."""

    def __init__(
        self,
        ctx: MigrationContext,
        adapter: LiveblocksAdapter,
        existing_rooms: Sequence[RoomData],
    ) -> None:
        self.ctx = ctx
        self.adapter = adapter
        self.existing = index_existing_rooms(existing_rooms)
        self.runner = ThrottledBatchRunner(
            ctx.config.batching.room_width, ctx.config.batching.delay, "room"
        )

    async def reconcile(
        self, progress: Optional[object] = None
    ) -> tuple[list[ReconciledRoom], MigrationStats]:
        """Reconcile every room the source threads need.

        Args:
            progress: Optional tqdm bar advanced as room batches settle.

        Returns:
            The rooms that now exist (with their current threads) and the
            folded room stats. Threads without a Location count as skipped.
        """
        ctx = self.ctx
        stats = MigrationStats()

        unlocated = ctx.unlocated_threads
        if unlocated:
            log_with_context(
                logging.WARNING,
                f"{ctx.log_prefix}Skipping {len(unlocated)} threads without a location",
                thread_count=len(unlocated),
            )
            stats += MigrationStats(threads_skipped=len(unlocated))

        groups = group_threads_by_room(ctx)
        log_with_context(
            logging.INFO,
            f"{ctx.log_prefix}Reconciling {len(groups)} rooms",
            room_count=len(groups),
        )
        outcomes = await self.runner.run(groups, self.reconcile_room, progress)

        rooms = [outcome[0] for outcome in outcomes if outcome and outcome[0]]
        stats += MigrationStats.total(outcome[1] for outcome in outcomes if outcome)
        return rooms, stats

    async def reconcile_room(
        self, group: tuple[str, list[SourceThread]]
    ) -> RoomOutcome:
        """Create or update the room for one group of threads."""
        ctx = self.ctx
        room_key, threads = group
        location = threads[0].location or {}

        org_id, all_org_ids = resolve_owner_org_id(threads)
        if len(all_org_ids) > 1:
            log_with_context(
                logging.WARNING,
                f"{ctx.log_prefix}Room {room_key} has threads from"
                f" {len(all_org_ids)} organizations, using {org_id}",
                room_id=room_key,
                org_ids=sorted(all_org_ids),
            )

        org = ctx.orgs_by_id.get(org_id) if org_id else None
        if org is None or org.state != ACTIVE_ORG_STATE or not org.external_id:
            log_with_context(
                logging.WARNING,
                f"{ctx.log_prefix}No active organization found for room {room_key}, skipping",
                room_id=room_key,
                cord_org_id=org_id,
            )
            return None, MigrationStats(rooms_skipped=1)

        params = build_room_params(ctx, org, location)
        existing = self.existing.get(room_key)

        try:
            if existing is not None:
                room = await self.adapter.update_room(existing["id"], params)
                stats = MigrationStats(rooms_updated=1)
            else:
                room, stats = await self._create_or_update(room_key, params)
        except APIError as e:
            log_with_context(
                logging.ERROR,
                f"{ctx.log_prefix}Failed to reconcile room {room_key}: {e}",
                room_id=room_key,
                client_external_id=org.external_id,
                status=e.status,
            )
            return None, MigrationStats(rooms_failed=1)

        room.setdefault("id", existing["id"] if existing is not None else room_key)
        reconciled = ReconciledRoom(
            room=room,
            location=location,
            org_external_id=org.external_id,
            key=room_key,
        )

        if stats.rooms_updated:
            try:
                reconciled.threads = await self.adapter.get_threads(reconciled.id)
            except APIError as e:
                log_with_context(
                    logging.ERROR,
                    f"{ctx.log_prefix}Failed to fetch threads of room {reconciled.id}: {e}",
                    room_id=reconciled.id,
                    status=e.status,
                )
                return None, MigrationStats(rooms_failed=1)

        return reconciled, stats

    async def _create_or_update(
        self, room_key: str, params: RoomParams
    ) -> tuple[RoomData, MigrationStats]:
        try:
            room = await self.adapter.create_room(room_key, params)
            log_with_context(
                logging.DEBUG,
                f"{self.ctx.log_prefix}Created room {room_key}",
                room_id=room_key,
            )
            return room, MigrationStats(rooms_created=1)
        except APIError as e:
            if not e.is_conflict:
                raise
            log_with_context(
                logging.INFO,
                f"{self.ctx.log_prefix}Room {room_key} already exists, updating",
                room_id=room_key,
            )
            room = await self.adapter.update_room(room_key, params)
            return room, MigrationStats(rooms_updated=1)


async def reconcile_rooms(
    ctx: MigrationContext,
    adapter: LiveblocksAdapter,
    existing_rooms: Sequence[RoomData],
    progress: Optional[object] = None,
) -> tuple[list[ReconciledRoom], MigrationStats]:
    """Reconcile all rooms. See :class:`RoomReconciler`."""
    return await RoomReconciler(ctx, adapter, existing_rooms).reconcile(progress)
