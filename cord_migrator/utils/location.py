"""Room key derivation from Cord page locations.

A Location (the ``contextData`` of the page a thread was left on) fully
determines the Liveblocks room the thread lives in. The room id is a UUIDv5
of the location's canonical JSON, so no mapping table is needed to find the
room again on a later run.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Mapping, Optional

from cord_migrator.constants import ROOM_KEY_NAMESPACE
from cord_migrator.types import Location


def normalize_location(location: Mapping[str, Any]) -> Location:
    """Return a copy of ``location`` with every value stringified."""
    normalized: Location = {}
    for key, value in location.items():
        if value is None:
            continue
        normalized[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return normalized


def canonicalize_location(location: Mapping[str, Any]) -> str:
    """Serialize a location to a stable string (sorted keys, no whitespace)."""
    return json.dumps(
        normalize_location(location),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def derive_room_key(location: Mapping[str, Any]) -> str:
    """Map a location to its deterministic Liveblocks room id."""
    return str(uuid.uuid5(ROOM_KEY_NAMESPACE, canonicalize_location(location)))


def location_from_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[Location]:
    """Recover the Location stored in a room's metadata.

    Liveblocks room metadata values are strings or lists of strings; list
    values are joined with commas. Returns ``None`` when nothing is stored.
    """
    if not metadata:
        return None

    location: Location = {}
    for key, value in metadata.items():
        if isinstance(value, str):
            location[key] = value
        elif isinstance(value, list):
            location[key] = ",".join(str(v) for v in value)
    return location or None
