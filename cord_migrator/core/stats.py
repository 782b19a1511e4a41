"""
Migration statistics for the Cord to Liveblocks migration.

Every reconciliation step returns a frozen :class:`MigrationStats` value
describing what it did; callers fold them with ``+``. Nothing is counted
through shared mutable state, so concurrent batches never race on counters.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Iterable


@dataclass(frozen=True)
class MigrationStats:
    """Counters for one reconciliation step (or a fold of many)."""

    rooms_created: int = 0
    rooms_updated: int = 0
    rooms_skipped: int = 0
    rooms_failed: int = 0

    threads_created: int = 0
    threads_reused: int = 0
    threads_existing: int = 0
    threads_skipped: int = 0
    threads_failed: int = 0

    comments_created: int = 0
    comments_existing: int = 0
    comments_failed: int = 0

    reactions_created: int = 0
    reactions_skipped: int = 0
    reactions_failed: int = 0

    resolutions_failed: int = 0
    ledger_writes_failed: int = 0

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ValueError(f"{f.name} must be non-negative")

    def __add__(self, other: MigrationStats) -> MigrationStats:
        if not isinstance(other, MigrationStats):
            return NotImplemented
        return MigrationStats(
            **{
                f.name: getattr(self, f.name) + getattr(other, f.name)
                for f in fields(self)
            }
        )

    @classmethod
    def total(cls, parts: Iterable[MigrationStats | None]) -> MigrationStats:
        """Fold a sequence of stats, ignoring ``None`` (failed units)."""
        result = cls()
        for part in parts:
            if part is not None:
                result = result + part
        return result

    @property
    def rooms(self) -> int:
        """Rooms that exist in Liveblocks after the run."""
        return self.rooms_created + self.rooms_updated

    @property
    def threads(self) -> int:
        """Threads that exist in Liveblocks and are claimed by a Cord thread."""
        return self.threads_created + self.threads_reused + self.threads_existing

    @property
    def comments(self) -> int:
        """Comments that exist in Liveblocks for a Cord message."""
        return self.comments_created + self.comments_existing

    @property
    def has_failures(self) -> bool:
        return bool(
            self.rooms_failed
            or self.threads_failed
            or self.comments_failed
            or self.ledger_writes_failed
        )

    def to_dict(self) -> dict[str, int]:
        """Flat dict of counters plus the derived totals."""
        data = asdict(self)
        data.update(rooms=self.rooms, threads=self.threads, comments=self.comments)
        return data
