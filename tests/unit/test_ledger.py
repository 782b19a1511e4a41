"""Unit tests for the idempotency ledger."""

import json

import pytest

from cord_migrator.constants import (
    LEDGER_VERSION,
    META_COMMENT_PAIRS,
    META_LEDGER_VERSION,
    META_THREAD_ID,
)
from cord_migrator.types import CommentPair
from cord_migrator.utils.ledger import (
    ThreadMetadata,
    find_pair,
    ledger_update,
    merge_ledger,
    parse_ledger,
    serialize_ledger,
)


class TestParseLedger:
    @pytest.mark.parametrize(
        "raw",
        [
            None,
            123,
            "not json",
            "[1,2,3]",
            '{"cordMessageId":"m1","liveblocksCommentId":"c1"}',
            '[{"cordMessageId":"m1"}]',
            '[{"cordMessageId":"","liveblocksCommentId":"c1"}]',
            '[{"cordMessageId":"m1","liveblocksCommentId":7}]',
        ],
    )
    def test_malformed_input_is_empty(self, raw):
        assert parse_ledger(raw) == []

    def test_valid_pair(self):
        raw = '[{"cordMessageId":"m1","liveblocksCommentId":"c1"}]'
        assert parse_ledger(raw) == [CommentPair("m1", "c1")]

    def test_invalid_elements_are_dropped_valid_kept(self):
        raw = json.dumps(
            [
                {"cordMessageId": "m1", "liveblocksCommentId": "c1"},
                "junk",
                {"liveblocksCommentId": "c2"},
                {"cordMessageId": "m3", "liveblocksCommentId": "c3", "extra": 1},
            ]
        )
        assert parse_ledger(raw) == [CommentPair("m1", "c1"), CommentPair("m3", "c3")]


def test_serialize_uses_wire_keys():
    raw = serialize_ledger([CommentPair("m1", "c1")])
    assert json.loads(raw) == [{"cordMessageId": "m1", "liveblocksCommentId": "c1"}]
    assert parse_ledger(raw) == [CommentPair("m1", "c1")]


class TestMergeLedger:
    def test_new_pair_replaces_existing_for_same_message(self):
        existing = [CommentPair("m1", "c1"), CommentPair("m2", "c2")]
        merged = merge_ledger(existing, [CommentPair("m1", "c9")])
        assert merged == [CommentPair("m2", "c2"), CommentPair("m1", "c9")]

    def test_order_is_existing_then_new(self):
        merged = merge_ledger([CommentPair("m1", "c1")], [CommentPair("m2", "c2")])
        assert [p.source_message_id for p in merged] == ["m1", "m2"]

    def test_merge_with_nothing_new_is_unchanged(self):
        existing = [CommentPair("m1", "c1")]
        assert merge_ledger(existing, []) == existing


def test_find_pair():
    ledger = [CommentPair("m1", "c1"), CommentPair("m2", "c2")]
    assert find_pair(ledger, "m2") == CommentPair("m2", "c2")
    assert find_pair(ledger, "m3") is None


class TestThreadMetadata:
    def test_from_metadata_reads_fields_and_location(self):
        metadata = {
            "cordThreadId": "T1",
            "cordOrgId": "O1",
            "cordCreatedTimestamp": "2024-01-01T12:00:00+00:00",
            "messageToCommentPairs": serialize_ledger([CommentPair("m1", "c1")]),
            "cordLedgerVersion": 1,
            "page": "dashboard",
        }
        parsed = ThreadMetadata.from_metadata(metadata)

        assert parsed.cord_thread_id == "T1"
        assert parsed.cord_org_id == "O1"
        assert parsed.ledger == [CommentPair("m1", "c1")]
        assert parsed.location == {"page": "dashboard"}

    def test_malformed_fields_default_to_empty(self):
        parsed = ThreadMetadata.from_metadata(
            {"cordThreadId": 5, "messageToCommentPairs": "oops"}
        )
        assert parsed.cord_thread_id is None
        assert parsed.ledger == []
        assert ThreadMetadata.from_metadata(None).cord_thread_id is None

    def test_to_metadata_reserved_keys_win_over_location(self):
        metadata = ThreadMetadata(
            cord_thread_id="T1",
            location={"page": "dashboard", "cordThreadId": "spoofed"},
        ).to_metadata()

        assert metadata[META_THREAD_ID] == "T1"
        assert metadata["page"] == "dashboard"
        assert metadata[META_COMMENT_PAIRS] == "[]"
        assert metadata[META_LEDGER_VERSION] == LEDGER_VERSION

    def test_to_metadata_without_ledger(self):
        metadata = ThreadMetadata(cord_thread_id="T1").to_metadata(include_ledger=False)
        assert META_COMMENT_PAIRS not in metadata


def test_ledger_update_only_touches_ledger_keys():
    patch = ledger_update([CommentPair("m1", "c1")])
    assert set(patch) == {META_COMMENT_PAIRS, META_LEDGER_VERSION}
