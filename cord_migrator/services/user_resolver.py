"""
User resolution logic for the Cord to Liveblocks migration tool.

Maps Cord user ids to the external ids Liveblocks knows users by. When a
Cord id is not a known user, outbound email notifications are consulted:
the id may be a notification id, or the user the notification was sent to.
"""

from __future__ import annotations

import logging

from cord_migrator.types import SourceSnapshot
from cord_migrator.utils.logging import log_with_context


class UserResolver:
    """Resolves Cord user ids to Liveblocks user ids."""

    def __init__(self, snapshot: SourceSnapshot) -> None:
        self._external_ids = {
            user.id: user.external_id for user in snapshot.users if user.external_id
        }
        self._notification_users: dict[str, str] = {}
        for notification in snapshot.email_notifications:
            if not notification.user_id:
                continue
            self._notification_users.setdefault(notification.id, notification.user_id)
            self._notification_users.setdefault(
                notification.user_id, notification.user_id
            )
        self._unresolved: set[str] = set()

    def get_external_id(self, cord_user_id: str | None) -> str | None:
        """Return the Liveblocks user id for a Cord user, or None.

        Args:
            cord_user_id: A Cord user id (or email notification id).

        Returns:
            The user's external id, or None when it cannot be resolved.
        """
        if not cord_user_id:
            return None

        external_id = self._external_ids.get(cord_user_id)
        if external_id:
            return external_id

        notified_user = self._notification_users.get(cord_user_id)
        if notified_user:
            external_id = self._external_ids.get(notified_user)
            if external_id:
                log_with_context(
                    logging.DEBUG,
                    f"Resolved user {cord_user_id} through email notifications",
                    cord_user_id=cord_user_id,
                )
                return external_id

        if cord_user_id not in self._unresolved:
            self._unresolved.add(cord_user_id)
            log_with_context(
                logging.WARNING,
                f"No external id found for Cord user {cord_user_id}",
                cord_user_id=cord_user_id,
            )
        return None

    @property
    def unresolved_users(self) -> set[str]:
        """Cord user ids that could not be resolved so far."""
        return set(self._unresolved)
