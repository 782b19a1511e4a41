"""Idempotency ledger stored in Liveblocks thread metadata.

Each migrated thread carries a JSON array of
``{"cordMessageId": ..., "liveblocksCommentId": ...}`` pairs under the
``messageToCommentPairs`` metadata key. Before creating a comment the
migration consults this ledger, so re-running against a partially migrated
thread only fills the gaps.

Parsing never raises: anything absent or malformed reads as an empty ledger.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cord_migrator.constants import (
    LEDGER_COMMENT_KEY,
    LEDGER_MESSAGE_KEY,
    LEDGER_VERSION,
    META_COMMENT_PAIRS,
    META_CREATED_TIMESTAMP,
    META_LEDGER_VERSION,
    META_ORG_ID,
    META_THREAD_ID,
    RESERVED_THREAD_METADATA_KEYS,
)
from cord_migrator.types import CommentPair, Location, MetadataValue


def _pair_from_element(element: Any) -> Optional[CommentPair]:
    if not isinstance(element, dict):
        return None
    message_id = element.get(LEDGER_MESSAGE_KEY)
    comment_id = element.get(LEDGER_COMMENT_KEY)
    if not isinstance(message_id, str) or not message_id:
        return None
    if not isinstance(comment_id, str) or not comment_id:
        return None
    return CommentPair(message_id, comment_id)


def parse_ledger(raw: Any) -> List[CommentPair]:
    """Decode a serialized ledger, dropping invalid elements.

    Args:
        raw: The metadata value; expected to be a JSON array string.

    Returns:
        The valid pairs in stored order, or ``[]`` for absent or malformed input.
    """
    if not isinstance(raw, str):
        return []
    try:
        decoded = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(decoded, list):
        return []

    pairs = []
    for element in decoded:
        pair = _pair_from_element(element)
        if pair is not None:
            pairs.append(pair)
    return pairs


def serialize_ledger(pairs: Iterable[CommentPair]) -> str:
    """Encode pairs as the JSON array stored in thread metadata."""
    return json.dumps([pair.to_dict() for pair in pairs], separators=(",", ":"))


def merge_ledger(
    existing: Iterable[CommentPair], new_pairs: Iterable[CommentPair]
) -> List[CommentPair]:
    """Merge new pairs into an existing ledger.

    Existing pairs whose message id also appears in ``new_pairs`` are
    replaced; all others survive. Order is existing-then-new.
    """
    new_list = list(new_pairs)
    replaced = {pair.source_message_id for pair in new_list}
    kept = [pair for pair in existing if pair.source_message_id not in replaced]
    return kept + new_list


def find_pair(
    ledger: Iterable[CommentPair], source_message_id: str
) -> Optional[CommentPair]:
    """Look up the pair recorded for a Cord message id."""
    for pair in ledger:
        if pair.source_message_id == source_message_id:
            return pair
    return None


@dataclass
class ThreadMetadata:
    """Typed view of the metadata the migration keeps on a Liveblocks thread."""

    cord_thread_id: Optional[str] = None
    cord_org_id: Optional[str] = None
    cord_created_timestamp: Optional[str] = None
    ledger: List[CommentPair] = field(default_factory=list)
    location: Location = field(default_factory=dict)

    @classmethod
    def from_metadata(cls, metadata: Optional[Mapping[str, Any]]) -> ThreadMetadata:
        """Read a thread's metadata; unknown or malformed values default to empty."""
        metadata = metadata or {}

        def _str(key: str) -> Optional[str]:
            value = metadata.get(key)
            return value if isinstance(value, str) and value else None

        location = {
            key: value
            for key, value in metadata.items()
            if key not in RESERVED_THREAD_METADATA_KEYS and isinstance(value, str)
        }
        return cls(
            cord_thread_id=_str(META_THREAD_ID),
            cord_org_id=_str(META_ORG_ID),
            cord_created_timestamp=_str(META_CREATED_TIMESTAMP),
            ledger=parse_ledger(metadata.get(META_COMMENT_PAIRS)),
            location=location,
        )

    def to_metadata(self, include_ledger: bool = True) -> Dict[str, MetadataValue]:
        """Build the metadata dict sent to Liveblocks.

        Location keys come first so the migration's own keys always win.
        """
        metadata: Dict[str, MetadataValue] = {
            key: value
            for key, value in self.location.items()
            if key not in RESERVED_THREAD_METADATA_KEYS
        }
        if self.cord_thread_id:
            metadata[META_THREAD_ID] = self.cord_thread_id
        if self.cord_org_id:
            metadata[META_ORG_ID] = self.cord_org_id
        if self.cord_created_timestamp:
            metadata[META_CREATED_TIMESTAMP] = self.cord_created_timestamp
        if include_ledger:
            metadata[META_COMMENT_PAIRS] = serialize_ledger(self.ledger)
            metadata[META_LEDGER_VERSION] = LEDGER_VERSION
        return metadata


def ledger_update(pairs: Iterable[CommentPair]) -> Dict[str, MetadataValue]:
    """Metadata patch that persists a ledger without touching other keys."""
    return {
        META_COMMENT_PAIRS: serialize_ledger(pairs),
        META_LEDGER_VERSION: LEDGER_VERSION,
    }
