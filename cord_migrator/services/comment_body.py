"""Comment payload construction for Cord-to-Liveblocks message transformation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cord_migrator.constants import COMMENT_BODY_VERSION
from cord_migrator.exceptions import UserMappingError
from cord_migrator.types import CreateCommentData, MessageNode, SourceMessage
from cord_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from cord_migrator.services.user_resolver import UserResolver


NODE_PARAGRAPH = "paragraph"
NODE_MENTION = "mention"
NODE_LINK = "link"
TEXT_MARKS = ("bold", "italic", "code")


def _text_leaf(node: MessageNode) -> dict[str, Any]:
    leaf: dict[str, Any] = {"text": node.get("text", "")}
    for mark in TEXT_MARKS:
        if node.get(mark):
            leaf[mark] = True
    return leaf


def _mention(node: MessageNode, user_resolver: UserResolver) -> dict[str, Any]:
    cord_user_id = (node.get("user") or {}).get("id", "")
    user_id = user_resolver.get_external_id(cord_user_id)
    if not user_id:
        log_with_context(
            logging.WARNING,
            f"Mentioned user {cord_user_id} not found, keeping Cord id",
            cord_user_id=cord_user_id,
        )
        user_id = cord_user_id
    return {"type": NODE_MENTION, "id": user_id}


def _link(node: MessageNode) -> dict[str, Any]:
    link: dict[str, Any] = {"type": NODE_LINK, "url": node.get("url", "")}
    text = "".join(
        child.get("text", "")
        for child in node.get("children") or []
        if isinstance(child, dict) and not child.get("type")
    )
    if text:
        link["text"] = text
    return link


def _inline_elements(
    node: MessageNode, user_resolver: UserResolver
) -> list[dict[str, Any]]:
    """Flatten a Cord node into Liveblocks inline elements."""
    node_type = node.get("type")
    if not node_type:
        return [_text_leaf(node)]
    if node_type == NODE_MENTION:
        return [_mention(node, user_resolver)]
    if node_type == NODE_LINK:
        return [_link(node)]

    # paragraph, assignee, quote, bullets, todo: keep their inline content
    inlines: list[dict[str, Any]] = []
    for child in node.get("children") or []:
        if isinstance(child, dict):
            inlines.extend(_inline_elements(child, user_resolver))
    return inlines


def to_paragraph(node: MessageNode, user_resolver: UserResolver) -> dict[str, Any]:
    """Convert one top-level Cord message node into a Liveblocks paragraph."""
    return {
        "type": NODE_PARAGRAPH,
        "children": _inline_elements(node, user_resolver),
    }


def build_comment_data(
    message: SourceMessage, user_resolver: UserResolver
) -> CreateCommentData:
    """Build the Liveblocks comment payload for a Cord message.

    Args:
        message: The Cord message to convert.
        user_resolver: Resolver for the author and mentioned users.

    Returns:
        The ``CreateCommentData`` payload.

    Raises:
        UserMappingError: If the message author has no Liveblocks identity.
    """
    user_id = user_resolver.get_external_id(message.author_id)
    if not user_id:
        raise UserMappingError(
            f"Author {message.author_id} of message {message.id} not found"
        )

    return {
        "userId": user_id,
        "createdAt": message.timestamp.isoformat(),
        "body": {
            "version": COMMENT_BODY_VERSION,
            "content": [
                to_paragraph(node, user_resolver)
                for node in message.content
                if isinstance(node, dict)
            ],
        },
    }
