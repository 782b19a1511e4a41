"""Unit test configuration and shared fixtures."""

from __future__ import annotations

import copy
import itertools
from collections import Counter
from typing import Any

import pytest

from cord_migrator.core.config import BatchConfig, MigrationConfig
from cord_migrator.core.context import MigrationContext
from cord_migrator.exceptions import APIError
from cord_migrator.services.user_resolver import UserResolver

# ---------------------------------------------------------------------------
# In-memory Liveblocks
# ---------------------------------------------------------------------------


class FakeLiveblocks:
    """In-memory stand-in for ``LiveblocksAdapter``.

    Stores rooms, threads and comments, raises ``APIError`` with 404/409 the
    way the real API does, and records every call. ``fail()`` queues errors
    for a method.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, dict[str, Any]] = {}
        self.threads: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: Counter[str] = Counter()
        self._errors: dict[str, list[APIError]] = {}
        self._ids = itertools.count(1)

    def fail(self, method: str, status: int, times: int = 1) -> None:
        """Make the next ``times`` calls to ``method`` raise ``APIError(status)``."""
        self._errors.setdefault(method, []).extend(
            APIError(f"{method} failed", status=status) for _ in range(times)
        )

    def _call(self, method: str) -> None:
        self.calls[method] += 1
        queued = self._errors.get(method)
        if queued:
            raise queued.pop(0)

    def _thread(self, room_id: str, thread_id: str) -> dict[str, Any]:
        thread = self.threads.get(room_id, {}).get(thread_id)
        if thread is None:
            raise APIError("Thread not found", status=404)
        return thread

    def add_thread(
        self, room_id: str, metadata: dict[str, Any], comment_ids: list[str] = ()
    ) -> dict[str, Any]:
        """Seed a thread directly, bypassing call recording."""
        thread_id = f"th_{next(self._ids)}"
        thread = {
            "type": "thread",
            "id": thread_id,
            "roomId": room_id,
            "metadata": dict(metadata),
            "resolved": False,
            "comments": [{"type": "comment", "id": cid} for cid in comment_ids],
        }
        self.threads.setdefault(room_id, {})[thread_id] = thread
        return thread

    def all_comments(self) -> list[dict[str, Any]]:
        return [
            comment
            for room in self.threads.values()
            for thread in room.values()
            for comment in thread["comments"]
        ]

    # -- Rooms ----------------------------------------------------------------

    async def list_all_rooms(self) -> list[dict[str, Any]]:
        self._call("list_all_rooms")
        return [copy.deepcopy(room) for room in self.rooms.values()]

    async def create_room(self, room_id: str, params: dict[str, Any]) -> dict[str, Any]:
        self._call("create_room")
        if room_id in self.rooms:
            raise APIError("Room already exists", status=409)
        self.rooms[room_id] = {"type": "room", "id": room_id, **copy.deepcopy(params)}
        self.threads.setdefault(room_id, {})
        return copy.deepcopy(self.rooms[room_id])

    async def update_room(self, room_id: str, params: dict[str, Any]) -> dict[str, Any]:
        self._call("update_room")
        if room_id not in self.rooms:
            raise APIError("Room not found", status=404)
        self.rooms[room_id].update(copy.deepcopy(params))
        return copy.deepcopy(self.rooms[room_id])

    # -- Threads --------------------------------------------------------------

    async def get_threads(self, room_id: str) -> list[dict[str, Any]]:
        self._call("get_threads")
        if room_id not in self.rooms:
            raise APIError("Room not found", status=404)
        return [copy.deepcopy(t) for t in self.threads.get(room_id, {}).values()]

    async def create_thread(
        self, room_id: str, comment: dict[str, Any], metadata: dict[str, Any]
    ) -> dict[str, Any]:
        self._call("create_thread")
        thread = self.add_thread(room_id, metadata)
        thread["comments"].append(
            {"type": "comment", "id": f"cm_{next(self._ids)}", **copy.deepcopy(comment)}
        )
        return copy.deepcopy(thread)

    async def edit_thread_metadata(
        self,
        room_id: str,
        thread_id: str,
        metadata: dict[str, Any],
        user_id: str,
        updated_at: str | None = None,
    ) -> dict[str, Any]:
        self._call("edit_thread_metadata")
        thread = self._thread(room_id, thread_id)
        thread["metadata"].update(metadata)
        return dict(thread["metadata"])

    async def mark_thread_as_resolved(
        self, room_id: str, thread_id: str, user_id: str
    ) -> dict[str, Any]:
        self._call("mark_thread_as_resolved")
        thread = self._thread(room_id, thread_id)
        thread["resolved"] = True
        thread["resolvedBy"] = user_id
        return copy.deepcopy(thread)

    # -- Comments -------------------------------------------------------------

    async def get_comment(
        self, room_id: str, thread_id: str, comment_id: str
    ) -> dict[str, Any]:
        self._call("get_comment")
        for comment in self._thread(room_id, thread_id)["comments"]:
            if comment["id"] == comment_id:
                return copy.deepcopy(comment)
        raise APIError("Comment not found", status=404)

    async def create_comment(
        self, room_id: str, thread_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        self._call("create_comment")
        comment = {"type": "comment", "id": f"cm_{next(self._ids)}", **copy.deepcopy(data)}
        self._thread(room_id, thread_id)["comments"].append(comment)
        return copy.deepcopy(comment)

    async def add_comment_reaction(
        self,
        room_id: str,
        thread_id: str,
        comment_id: str,
        emoji: str,
        user_id: str,
        created_at: str | None = None,
    ) -> dict[str, Any]:
        self._call("add_comment_reaction")
        for comment in self._thread(room_id, thread_id)["comments"]:
            if comment["id"] == comment_id:
                reaction = {"emoji": emoji, "userId": user_id}
                comment.setdefault("reactions", []).append(reaction)
                return reaction
        raise APIError("Comment not found", status=404)


@pytest.fixture()
def fake_liveblocks():
    """Return a fresh in-memory Liveblocks."""
    return FakeLiveblocks()


# ---------------------------------------------------------------------------
# Migration context
# ---------------------------------------------------------------------------


def fast_config(**kwargs: Any) -> MigrationConfig:
    """A MigrationConfig with no pause between batches."""
    kwargs.setdefault("batching", BatchConfig(delay_ms=0))
    kwargs.setdefault("environment", "staging")
    return MigrationConfig(**kwargs)


@pytest.fixture()
def make_context():
    """Factory fixture: build a MigrationContext for a snapshot.

    Usage in tests::

        def test_something(make_context, sample_snapshot):
            ctx = make_context(sample_snapshot, resolved_threads=...)
    """

    def _make(snapshot, **config_kwargs: Any) -> MigrationContext:
        config = fast_config(**config_kwargs)
        return MigrationContext.build(
            config, "staging", snapshot, UserResolver(snapshot)
        )

    return _make


@pytest.fixture()
def sample_context(make_context, sample_snapshot):
    """Return a MigrationContext over the sample snapshot."""
    return make_context(sample_snapshot)
