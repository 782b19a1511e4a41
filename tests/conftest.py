"""Shared test fixtures for the cord_migrator test suite."""

from datetime import datetime, timedelta, timezone

import pytest

from cord_migrator.types import (
    EmailNotification,
    SourceMessage,
    SourceOrg,
    SourceReaction,
    SourceSnapshot,
    SourceThread,
    SourceUser,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

DASHBOARD = {"page": "dashboard", "section": "1"}
REPORTS = {"page": "reports"}


def at(minutes):
    """A timestamp ``minutes`` after the fixture base time."""
    return BASE_TIME + timedelta(minutes=minutes)


def text_content(text):
    """Cord message content holding a single paragraph of plain text."""
    return [{"type": "paragraph", "children": [{"text": text}]}]


@pytest.fixture()
def sample_orgs():
    """Return sample Cord organizations."""
    return [
        SourceOrg(
            id="O1", external_id="acme", state="active", created_timestamp=at(0)
        ),
        SourceOrg(
            id="O2", external_id=None, state="active", created_timestamp=at(0)
        ),
    ]


@pytest.fixture()
def sample_users():
    """Return sample Cord users; U3 has no external id."""
    return [
        SourceUser(id="U1", external_id="alice"),
        SourceUser(id="U2", external_id="bob"),
        SourceUser(id="U3", external_id=None),
    ]


@pytest.fixture()
def sample_threads():
    """Return sample Cord threads.

    T1 and T2 share the dashboard location, T3 has no authored messages and
    T4 has no location at all.
    """
    return [
        SourceThread(id="T1", org_id="O1", created_timestamp=at(1), location=DASHBOARD),
        SourceThread(
            id="T2",
            org_id="O1",
            created_timestamp=at(2),
            location=DASHBOARD,
            resolved_timestamp=at(30),
            resolver_user_id="U1",
        ),
        SourceThread(id="T3", org_id="O1", created_timestamp=at(3), location=REPORTS),
        SourceThread(id="T4", org_id="O1", created_timestamp=at(4), location=None),
    ]


@pytest.fixture()
def sample_messages():
    """Return sample Cord messages for the sample threads."""
    return [
        SourceMessage("M1", "T1", "U1", at(10), text_content("First")),
        SourceMessage("M2", "T1", "U2", at(11), text_content("Second")),
        SourceMessage("M3", "T1", "U1", at(12), text_content("Third")),
        SourceMessage("M4", "T2", "U2", at(20), text_content("Only")),
        SourceMessage("M5", "T3", None, at(25), text_content("Nobody")),
        SourceMessage("M6", "T4", "U1", at(26), text_content("Nowhere")),
    ]


@pytest.fixture()
def sample_reactions():
    """Return sample reactions; R2 comes from a user without an external id."""
    return [
        SourceReaction("R1", "M1", "U2", "👍", at(13)),
        SourceReaction("R2", "M2", "U3", ":tada:", at(14)),
    ]


@pytest.fixture()
def sample_snapshot(
    sample_orgs, sample_users, sample_threads, sample_messages, sample_reactions
):
    """Return a complete sample snapshot."""
    return SourceSnapshot(
        orgs=sample_orgs,
        users=sample_users,
        threads=sample_threads,
        messages=sample_messages,
        reactions=sample_reactions,
        email_notifications=[EmailNotification(id="N1", user_id="U1", org_id="O1")],
    )
