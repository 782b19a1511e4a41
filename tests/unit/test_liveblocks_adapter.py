"""Unit tests for LiveblocksAdapter against a mocked aiohttp session."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from cord_migrator.exceptions import APIError
from cord_migrator.services.liveblocks_adapter import LiveblocksAdapter


def _response(status=200, body=None, reason="OK", content_length=None):
    resp = MagicMock()
    resp.status = status
    resp.reason = reason
    resp.content_length = content_length
    resp.json = AsyncMock(return_value=body)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


def _adapter(*responses, **kwargs):
    session = MagicMock()
    session.request = MagicMock(side_effect=list(responses))
    adapter = LiveblocksAdapter(
        "sk_dev_secret",
        base_url="https://lb.test/",
        max_retries=0,
        session=session,
        **kwargs,
    )
    return adapter, session


def _call(session, index=0):
    call = session.request.call_args_list[index]
    return call.args[0], call.args[1], call.kwargs


class TestRequests:
    @pytest.mark.asyncio
    async def test_sends_bearer_secret(self):
        adapter, session = _adapter(_response(body={"data": []}))

        assert await adapter.get_threads("r1") == []

        method, url, kwargs = _call(session)
        assert method == "GET"
        assert url == "https://lb.test/v2/rooms/r1/threads"
        assert kwargs["headers"] == {"Authorization": "Bearer sk_dev_secret"}

    @pytest.mark.asyncio
    async def test_path_segments_are_escaped(self):
        adapter, session = _adapter(_response(body={"id": "c1"}))

        await adapter.get_comment("room/1", "th 1", "c1")

        _, url, _ = _call(session)
        assert url == "https://lb.test/v2/rooms/room%2F1/threads/th%201/comments/c1"

    @pytest.mark.asyncio
    async def test_list_all_rooms_walks_cursor(self):
        adapter, session = _adapter(
            _response(body={"data": [{"id": "r1"}], "nextCursor": "abc"}),
            _response(body={"data": [{"id": "r2"}], "nextCursor": None}),
        )

        rooms = await adapter.list_all_rooms()

        assert [r["id"] for r in rooms] == ["r1", "r2"]
        assert "startingAfter" not in _call(session, 0)[2]["params"]
        assert _call(session, 1)[2]["params"]["startingAfter"] == "abc"

    @pytest.mark.asyncio
    async def test_create_room_sends_id_and_params(self):
        adapter, session = _adapter(_response(body={"id": "key"}))
        params = {
            "defaultAccesses": [],
            "groupsAccesses": {"internal": ["room:write"]},
            "metadata": {"page": "dashboard"},
        }

        await adapter.create_room("key", params)

        method, url, kwargs = _call(session)
        assert (method, url) == ("POST", "https://lb.test/v2/rooms")
        assert kwargs["json"] == {"id": "key", **params}

    @pytest.mark.asyncio
    async def test_get_threads_unwraps_data(self):
        adapter, _ = _adapter(_response(body={"data": [{"id": "th1"}]}))
        assert await adapter.get_threads("r1") == [{"id": "th1"}]

    @pytest.mark.asyncio
    async def test_edit_thread_metadata_body(self):
        adapter, session = _adapter(_response(body={"cordThreadId": "T1"}))

        await adapter.edit_thread_metadata(
            "r1", "th1", {"cordThreadId": "T1"}, user_id="system", updated_at="2024-01-01"
        )

        method, url, kwargs = _call(session)
        assert url.endswith("/threads/th1/metadata")
        assert kwargs["json"] == {
            "metadata": {"cordThreadId": "T1"},
            "userId": "system",
            "updatedAt": "2024-01-01",
        }

    @pytest.mark.asyncio
    async def test_add_reaction_body(self):
        adapter, session = _adapter(_response(body={"emoji": "👍"}))

        await adapter.add_comment_reaction("r1", "th1", "c1", "👍", "alice")

        _, url, kwargs = _call(session)
        assert url.endswith("/comments/c1/add-reaction")
        assert kwargs["json"] == {"emoji": "👍", "userId": "alice"}

    @pytest.mark.asyncio
    async def test_no_content_returns_empty_dict(self):
        adapter, _ = _adapter(_response(status=204))
        assert await adapter.edit_thread_metadata("r1", "th1", {}, user_id="system") == {}

        adapter, _ = _adapter(_response(status=200, content_length=0))
        assert await adapter.mark_thread_as_resolved("r1", "th1", "alice") == {}


class TestErrors:
    @pytest.mark.asyncio
    async def test_not_found_carries_status_and_message(self):
        adapter, _ = _adapter(
            _response(status=404, body={"message": "Comment not found"}, reason="Not Found")
        )

        with pytest.raises(APIError) as exc_info:
            await adapter.get_comment("r1", "th1", "missing")

        assert exc_info.value.is_not_found
        assert exc_info.value.message == "Comment not found"

    @pytest.mark.asyncio
    async def test_conflict_is_not_retried(self):
        session = MagicMock()
        session.request = MagicMock(
            return_value=_response(status=409, body=None, reason="Conflict")
        )
        adapter = LiveblocksAdapter("sk", session=session, max_retries=3, retry_delay=0)

        with pytest.raises(APIError) as exc_info:
            await adapter.create_room("key", {})

        assert exc_info.value.is_conflict
        assert exc_info.value.message == "Conflict"
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        session = MagicMock()
        session.request = MagicMock(
            side_effect=[
                _response(status=503, body={"error": "unavailable"}),
                _response(body={"data": [{"id": "th1"}]}),
            ]
        )
        adapter = LiveblocksAdapter("sk", session=session, max_retries=2, retry_delay=0)

        assert await adapter.get_threads("r1") == [{"id": "th1"}]
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_create_comment_is_not_resent_after_timeout(self):
        session = MagicMock()
        session.request = MagicMock(side_effect=asyncio.TimeoutError())
        adapter = LiveblocksAdapter("sk", session=session, max_retries=3, retry_delay=0)

        with pytest.raises(APIError) as exc_info:
            await adapter.create_comment(
                "r1", "th1", {"userId": "alice", "createdAt": "2024-01-01", "body": {}}
            )

        assert exc_info.value.status == 0
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_create_thread_is_not_resent_after_server_error(self):
        session = MagicMock()
        session.request = MagicMock(
            return_value=_response(status=502, body=None, reason="Bad Gateway")
        )
        adapter = LiveblocksAdapter("sk", session=session, max_retries=3, retry_delay=0)

        with pytest.raises(APIError) as exc_info:
            await adapter.create_thread("r1", {"userId": "alice"}, {"cordThreadId": "T1"})

        assert exc_info.value.status == 502
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_create_comment_is_retried_when_rate_limited(self):
        session = MagicMock()
        session.request = MagicMock(
            side_effect=[
                _response(status=429, body=None, reason="Too Many Requests"),
                _response(body={"id": "c1"}),
            ]
        )
        adapter = LiveblocksAdapter("sk", session=session, max_retries=3, retry_delay=0)

        comment = await adapter.create_comment(
            "r1", "th1", {"userId": "alice", "createdAt": "2024-01-01", "body": {}}
        )

        assert comment == {"id": "c1"}
        assert session.request.call_count == 2

    @pytest.mark.asyncio
    async def test_transport_error_has_status_zero(self):
        session = MagicMock()
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))
        adapter = LiveblocksAdapter("sk", session=session, max_retries=0)

        with pytest.raises(APIError) as exc_info:
            await adapter.get_threads("r1")

        assert exc_info.value.status == 0

    @pytest.mark.asyncio
    async def test_used_outside_context_manager(self):
        adapter = LiveblocksAdapter("sk", max_retries=0)
        with pytest.raises(RuntimeError):
            await adapter.get_threads("r1")


@pytest.mark.asyncio
async def test_injected_session_is_not_closed():
    session = MagicMock()
    session.close = AsyncMock()

    async with LiveblocksAdapter("sk", session=session):
        pass

    session.close.assert_not_awaited()
