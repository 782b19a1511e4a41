"""
Cord source data loading.

Reads a Cord database export (one JSON array per table) and produces a
read-only :class:`~cord_migrator.types.SourceSnapshot` scoped to one
environment. Each thread's Location is resolved here from ``pages.json``,
keyed by the thread's page context hash and organization.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from cord_migrator.core.config import MigrationConfig, should_process_org
from cord_migrator.exceptions import ExportError
from cord_migrator.types import (
    EmailNotification,
    Location,
    SourceMessage,
    SourceOrg,
    SourceReaction,
    SourceSnapshot,
    SourceThread,
    SourceUser,
)
from cord_migrator.utils.location import normalize_location
from cord_migrator.utils.logging import log_with_context

REQUIRED_FILES = ("orgs.json", "users.json", "threads.json", "messages.json")
OPTIONAL_FILES = (
    "applications.json",
    "org_members.json",
    "message_reactions.json",
    "pages.json",
    "email_notifications.json",
)

ACTIVE_ORG_STATE = "active"


class SourceDataProvider(Protocol):
    """Anything that can produce a Cord snapshot for an environment."""

    def load(self, environment: str) -> SourceSnapshot: ...


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp (``Z`` suffix allowed) or epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _require_timestamp(record: dict[str, Any], key: str, source: str) -> datetime:
    parsed = parse_timestamp(record.get(key))
    if parsed is None:
        raise ExportError(
            f"Record {record.get('id')!r} in {source} has invalid {key}: {record.get(key)!r}"
        )
    return parsed


class ExportSourceProvider:
    """Loads a Cord snapshot from an export directory."""

    def __init__(self, export_root: str | Path, config: MigrationConfig) -> None:
        self.export_root = Path(export_root)
        self.config = config

    def validate_export_format(self) -> None:
        """Validate that the export directory has the expected structure."""
        if not self.export_root.is_dir():
            raise ExportError(f"Export directory not found: {self.export_root}")

        for name in REQUIRED_FILES:
            if not (self.export_root / name).exists():
                raise ExportError(
                    f"{name} not found in {self.export_root}. This file is required."
                )

        for name in OPTIONAL_FILES:
            if not (self.export_root / name).exists():
                log_with_context(
                    logging.WARNING, f"{name} not found in export directory"
                )

    def _read(self, name: str) -> list[dict[str, Any]]:
        path = self.export_root / name
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ExportError(f"Failed to read {path}: {e}") from e
        if not isinstance(data, list):
            raise ExportError(f"{path} must contain a JSON array")
        return [record for record in data if isinstance(record, dict)]

    def load(self, environment: str) -> SourceSnapshot:
        """Load every record in scope for ``environment``.

        Scope: active organizations belonging to the environment's
        applications (when ``applications.json`` is present) that pass the
        include/exclude filters, and everything hanging off them.
        """
        self.validate_export_format()
        log_with_context(logging.INFO, f"Fetching Cord data for {environment}...")

        orgs = self._load_orgs(environment)
        org_ids = {org.id for org in orgs}

        member_ids = {
            m.get("user_id")
            for m in self._read("org_members.json")
            if m.get("org_id") in org_ids
        }
        users = [
            SourceUser(id=u["id"], external_id=u.get("external_id"))
            for u in self._read("users.json")
            if u.get("id") and (not member_ids or u["id"] in member_ids)
        ]

        pages = self._load_pages()
        threads = [
            self._to_thread(t, pages)
            for t in self._read("threads.json")
            if t.get("org_id") in org_ids
        ]
        thread_ids = {t.id for t in threads}

        messages = [
            SourceMessage(
                id=m["id"],
                thread_id=m["thread_id"],
                author_id=m.get("source_id") or None,
                timestamp=_require_timestamp(m, "timestamp", "messages.json"),
                content=m.get("content") or [],
            )
            for m in self._read("messages.json")
            if m.get("thread_id") in thread_ids
        ]
        message_ids = {m.id for m in messages}

        reactions = [
            SourceReaction(
                id=r.get("id", ""),
                message_id=r["message_id"],
                user_id=r.get("user_id") or None,
                emoji=r.get("unicode_reaction", ""),
                timestamp=_require_timestamp(r, "timestamp", "message_reactions.json"),
            )
            for r in self._read("message_reactions.json")
            if r.get("message_id") in message_ids
        ]

        email_notifications = [
            EmailNotification(
                id=n["id"], user_id=n.get("user_id"), org_id=n.get("org_id")
            )
            for n in self._read("email_notifications.json")
            if n.get("id") and n.get("org_id") in org_ids
        ]

        snapshot = SourceSnapshot(
            orgs=orgs,
            users=users,
            threads=threads,
            messages=messages,
            reactions=reactions,
            email_notifications=email_notifications,
        )
        log_with_context(logging.INFO, "Cord data fetched", **snapshot.counts())
        return snapshot

    def _load_orgs(self, environment: str) -> list[SourceOrg]:
        applications = self._read("applications.json")
        application_ids = {
            a["id"] for a in applications if a.get("environment") == environment
        }
        if applications and not application_ids:
            log_with_context(
                logging.WARNING,
                f"No applications found for environment {environment}",
            )

        orgs = []
        for o in self._read("orgs.json"):
            if o.get("state") != ACTIVE_ORG_STATE:
                continue
            if applications and o.get("platform_application_id") not in application_ids:
                continue
            if not should_process_org(o.get("external_id"), self.config):
                continue
            orgs.append(
                SourceOrg(
                    id=o["id"],
                    external_id=o.get("external_id"),
                    state=o["state"],
                    created_timestamp=_require_timestamp(
                        o, "created_timestamp", "orgs.json"
                    ),
                    application_id=o.get("platform_application_id"),
                )
            )
        return orgs

    def _load_pages(self) -> dict[tuple[str, str], Location]:
        pages: dict[tuple[str, str], Location] = {}
        for page in self._read("pages.json"):
            context_data = page.get("context_data")
            if not isinstance(context_data, dict):
                continue
            key = (page.get("context_hash"), page.get("org_id"))
            pages[key] = normalize_location(context_data)
        return pages

    def _to_thread(
        self, record: dict[str, Any], pages: dict[tuple[str, str], Location]
    ) -> SourceThread:
        location = pages.get((record.get("page_context_hash"), record.get("org_id")))
        if not location:
            log_with_context(
                logging.WARNING,
                f"No location found for thread {record['id']}",
                cord_thread_id=record["id"],
                context_hash=record.get("page_context_hash"),
            )
            location = None

        return SourceThread(
            id=record["id"],
            org_id=record["org_id"],
            created_timestamp=_require_timestamp(
                record, "created_timestamp", "threads.json"
            ),
            location=location,
            resolved_timestamp=parse_timestamp(record.get("resolved_timestamp")),
            resolver_user_id=record.get("resolver_user_id") or None,
        )
