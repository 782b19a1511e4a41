"""Typed async adapter for the Liveblocks REST API.

Each method maps to one REST endpoint and returns the decoded JSON body.
Failures are raised as :class:`~cord_migrator.exceptions.APIError` carrying
the HTTP status (``0`` for transport errors), so reconciliation code can
branch on ``is_not_found`` / ``is_conflict`` without knowing about aiohttp.

Retries for 429, 5xx and transport errors are applied per request. Thread
and comment creation is retried on 429 only: a timed out or failed create
may still have been applied, and is left to the next run's ledger check.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from cord_migrator.constants import DEFAULT_API_BASE_URL, ROOMS_PAGE_SIZE
from cord_migrator.exceptions import APIError
from cord_migrator.types import (
    CommentData,
    CreateCommentData,
    MetadataValue,
    RoomData,
    RoomParams,
    ThreadData,
)
from cord_migrator.utils.api import is_rate_limited, with_retry
from cord_migrator.utils.logging import (
    log_api_request,
    log_api_response,
    log_with_context,
)


def _segment(value: str) -> str:
    return quote(value, safe="")


class LiveblocksAdapter:
    """Thin typed wrapper around the Liveblocks REST API (v2)."""

    def __init__(
        self,
        secret: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 2,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._secret = secret
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._request = with_retry(max_retries, retry_delay)(self._send)
        self._request_once = with_retry(
            max_retries, retry_delay, retry_on=is_rate_limited
        )(self._send)

    async def __aenter__(self) -> LiveblocksAdapter:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _send(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        if self._session is None:
            raise RuntimeError("LiveblocksAdapter used outside of 'async with'")

        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._secret}"}
        log_api_request(method, url, json)

        try:
            async with self._session.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                if resp.status >= 400:
                    message = await self._error_message(resp)
                    log_api_response(resp.status, url, message)
                    raise APIError(message, status=resp.status)

                if resp.status == 204 or resp.content_length == 0:
                    log_api_response(resp.status, url)
                    return {}

                body = await resp.json(content_type=None)
                log_api_response(resp.status, url, body)
                return body if body is not None else {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise APIError(f"{method} {path} failed: {e!r}", status=0) from e

    @staticmethod
    async def _error_message(resp: aiohttp.ClientResponse) -> str:
        try:
            body = await resp.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return resp.reason or f"HTTP {resp.status}"

    # -- Rooms ----------------------------------------------------------------

    async def list_rooms(
        self, starting_after: str | None = None, limit: int = ROOMS_PAGE_SIZE
    ) -> dict[str, Any]:
        """List one page of rooms.

        Args:
            starting_after: Cursor from the previous page's ``nextCursor``.
            limit: Maximum rooms per page.

        Returns:
            Raw response with ``data`` and ``nextCursor`` keys.
        """
        params: dict[str, Any] = {"limit": limit}
        if starting_after:
            params["startingAfter"] = starting_after
        result: dict[str, Any] = await self._request("GET", "/v2/rooms", params=params)
        return result

    async def list_all_rooms(self) -> list[RoomData]:
        """Fetch every room by walking the cursor; pages are fetched one by one."""
        rooms: list[RoomData] = []
        cursor: str | None = None
        page = 0
        while page == 0 or cursor:
            response = await self.list_rooms(starting_after=cursor)
            rooms.extend(response.get("data", []))
            cursor = response.get("nextCursor")
            page += 1
        log_with_context(
            logging.DEBUG, f"Fetched {len(rooms)} rooms in {page} page(s)"
        )
        return rooms

    async def create_room(self, room_id: str, params: RoomParams) -> RoomData:
        """Create a room with a caller-chosen id. Raises 409 if it exists."""
        result: RoomData = await self._request(
            "POST", "/v2/rooms", json={"id": room_id, **params}
        )
        return result

    async def update_room(self, room_id: str, params: RoomParams) -> RoomData:
        result: RoomData = await self._request(
            "POST", f"/v2/rooms/{_segment(room_id)}", json=dict(params)
        )
        return result

    # -- Threads --------------------------------------------------------------

    async def get_threads(self, room_id: str) -> list[ThreadData]:
        """List every thread in a room."""
        result = await self._request("GET", f"/v2/rooms/{_segment(room_id)}/threads")
        threads: list[ThreadData] = result.get("data", [])
        return threads

    async def create_thread(
        self,
        room_id: str,
        comment: CreateCommentData,
        metadata: dict[str, MetadataValue],
    ) -> ThreadData:
        """Create a thread together with its opening comment."""
        result: ThreadData = await self._request_once(
            "POST",
            f"/v2/rooms/{_segment(room_id)}/threads",
            json={"comment": dict(comment), "metadata": metadata},
        )
        return result

    async def edit_thread_metadata(
        self,
        room_id: str,
        thread_id: str,
        metadata: dict[str, MetadataValue],
        user_id: str,
        updated_at: str | None = None,
    ) -> dict[str, MetadataValue]:
        """Patch thread metadata; keys not present in ``metadata`` are kept."""
        body: dict[str, Any] = {"metadata": metadata, "userId": user_id}
        if updated_at:
            body["updatedAt"] = updated_at
        result: dict[str, MetadataValue] = await self._request(
            "POST",
            f"/v2/rooms/{_segment(room_id)}/threads/{_segment(thread_id)}/metadata",
            json=body,
        )
        return result

    async def mark_thread_as_resolved(
        self, room_id: str, thread_id: str, user_id: str
    ) -> ThreadData:
        result: ThreadData = await self._request(
            "POST",
            f"/v2/rooms/{_segment(room_id)}/threads/{_segment(thread_id)}/mark-as-resolved",
            json={"userId": user_id},
        )
        return result

    # -- Comments -------------------------------------------------------------

    async def get_comment(
        self, room_id: str, thread_id: str, comment_id: str
    ) -> CommentData:
        result: CommentData = await self._request(
            "GET",
            f"/v2/rooms/{_segment(room_id)}/threads/{_segment(thread_id)}"
            f"/comments/{_segment(comment_id)}",
        )
        return result

    async def create_comment(
        self, room_id: str, thread_id: str, data: CreateCommentData
    ) -> CommentData:
        result: CommentData = await self._request_once(
            "POST",
            f"/v2/rooms/{_segment(room_id)}/threads/{_segment(thread_id)}/comments",
            json=dict(data),
        )
        return result

    # -- Reactions ------------------------------------------------------------

    async def add_comment_reaction(
        self,
        room_id: str,
        thread_id: str,
        comment_id: str,
        emoji: str,
        user_id: str,
        created_at: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"emoji": emoji, "userId": user_id}
        if created_at:
            body["createdAt"] = created_at
        result: dict[str, Any] = await self._request(
            "POST",
            f"/v2/rooms/{_segment(room_id)}/threads/{_segment(thread_id)}"
            f"/comments/{_segment(comment_id)}/add-reaction",
            json=body,
        )
        return result
