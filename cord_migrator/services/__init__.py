"""Service integrations for the Cord export and the Liveblocks API."""

__all__ = [
    "comment_body",
    "comments",
    "liveblocks_adapter",
    "reactions",
    "rooms",
    "source",
    "threads",
    "user_resolver",
]
