"""Shared type definitions for the Cord to Liveblocks migration tool.

Provides dataclasses for the Cord source records flowing through the
migration pipeline, TypedDicts for Liveblocks API response shapes, and
the idempotency ledger pair type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict, Union

from cord_migrator.constants import LEDGER_COMMENT_KEY, LEDGER_MESSAGE_KEY

Location = Dict[str, str]
MessageNode = Dict[str, Any]

# ---------------------------------------------------------------------------
# Cord source records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceOrg:
    """An organization from the Cord export ``orgs.json``."""

    id: str
    external_id: Optional[str]
    state: str
    created_timestamp: datetime
    application_id: Optional[str] = None


@dataclass(frozen=True)
class SourceUser:
    """A user from the Cord export ``users.json``."""

    id: str
    external_id: Optional[str]


@dataclass(frozen=True)
class SourceThread:
    """A thread from the Cord export, with its Location already resolved.

    ``location`` is ``None`` when no page matched the thread's context hash,
    which makes the thread unmigratable.
    """

    id: str
    org_id: str
    created_timestamp: datetime
    location: Optional[Location] = None
    resolved_timestamp: Optional[datetime] = None
    resolver_user_id: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_timestamp is not None


@dataclass(frozen=True)
class SourceMessage:
    """A message from the Cord export ``messages.json``."""

    id: str
    thread_id: str
    author_id: Optional[str]
    timestamp: datetime
    content: List[MessageNode] = field(default_factory=list)


@dataclass(frozen=True)
class SourceReaction:
    """A reaction from the Cord export ``message_reactions.json``."""

    id: str
    message_id: str
    user_id: Optional[str]
    emoji: str
    timestamp: datetime


@dataclass(frozen=True)
class EmailNotification:
    """An outbound email notification, used as a user lookup fallback."""

    id: str
    user_id: Optional[str]
    org_id: Optional[str] = None


@dataclass(frozen=True)
class SourceSnapshot:
    """Read-only snapshot of everything loaded from the Cord export."""

    orgs: List[SourceOrg] = field(default_factory=list)
    users: List[SourceUser] = field(default_factory=list)
    threads: List[SourceThread] = field(default_factory=list)
    messages: List[SourceMessage] = field(default_factory=list)
    reactions: List[SourceReaction] = field(default_factory=list)
    email_notifications: List[EmailNotification] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        """Record counts keyed the way the migration response reports them."""
        return {
            "orgs": len(self.orgs),
            "users": len(self.users),
            "threads": len(self.threads),
            "messages": len(self.messages),
            "emailNotifications": len(self.email_notifications),
        }


# ---------------------------------------------------------------------------
# Liveblocks API shapes
# ---------------------------------------------------------------------------

MetadataValue = Union[str, int, float, bool]


class RoomData(TypedDict, total=False):
    """A room resource from the Liveblocks API."""

    id: str
    type: str
    createdAt: str
    lastConnectionAt: str
    defaultAccesses: List[str]
    groupsAccesses: Dict[str, List[str]]
    usersAccesses: Dict[str, List[str]]
    metadata: Dict[str, Union[str, List[str]]]


class CommentData(TypedDict, total=False):
    """A comment resource from the Liveblocks API."""

    type: str
    id: str
    threadId: str
    roomId: str
    userId: str
    createdAt: str
    body: Dict[str, Any]
    reactions: List[Dict[str, Any]]


class ThreadData(TypedDict, total=False):
    """A thread resource from the Liveblocks API."""

    type: str
    id: str
    roomId: str
    createdAt: str
    resolved: bool
    metadata: Dict[str, MetadataValue]
    comments: List[CommentData]


class RoomParams(TypedDict):
    """Body shared by room create and update requests."""

    defaultAccesses: List[str]
    groupsAccesses: Dict[str, List[str]]
    metadata: Dict[str, str]


class CreateCommentData(TypedDict):
    """Payload for creating a comment (alone or as a thread's first comment)."""

    userId: str
    createdAt: str
    body: Dict[str, Any]


# ---------------------------------------------------------------------------
# Idempotency ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommentPair:
    """Maps a Cord message id to the Liveblocks comment created from it."""

    source_message_id: str
    destination_comment_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            LEDGER_MESSAGE_KEY: self.source_message_id,
            LEDGER_COMMENT_KEY: self.destination_comment_id,
        }


@dataclass
class ReconciledRoom:
    """A room that exists in Liveblocks after reconciliation, with its threads."""

    room: RoomData
    threads: List[ThreadData] = field(default_factory=list)
    location: Optional[Location] = None
    org_external_id: Optional[str] = None
    key: Optional[str] = None

    @property
    def id(self) -> str:
        return self.room["id"]

    @property
    def room_key(self) -> str:
        """Room Key the source threads were grouped under."""
        return self.key or self.id
