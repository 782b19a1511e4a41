"""Custom exception hierarchy for the Cord to Liveblocks migration tool."""

from __future__ import annotations

from cord_migrator.constants import HTTP_CONFLICT, HTTP_NOT_FOUND


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class ExportError(MigratorError):
    """Raised when the Cord export data is invalid or unreadable."""


class APIError(MigratorError):
    """Raised when a Liveblocks API call fails.

    ``status`` is the HTTP status code, or ``0`` for transport failures
    where no response was received.
    """

    def __init__(self, message: str, status: int = 0) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    @property
    def is_not_found(self) -> bool:
        return self.status == HTTP_NOT_FOUND

    @property
    def is_conflict(self) -> bool:
        return self.status == HTTP_CONFLICT


class UserMappingError(MigratorError):
    """Raised when a Cord user cannot be mapped to a Liveblocks user id."""


class MigrationAbortedError(MigratorError):
    """Raised when the migration is aborted before reconciliation starts."""
