"""
API utilities for the Cord to Liveblocks migration tool
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from cord_migrator.constants import (
    ENVIRONMENT_PRODUCTION,
    ENVIRONMENT_STAGING,
    HTTP_RATE_LIMIT,
    MAX_RETRY_DELAY_SECONDS,
    PRODUCTION_SECRET_PREFIX,
    RETRY_BACKOFF_FACTOR,
)
from cord_migrator.exceptions import APIError
from cord_migrator.utils.logging import log_with_context

T = TypeVar("T")


def is_retryable(error: APIError) -> bool:
    """Transport failures, rate limits and server errors are worth retrying."""
    if error.status == 0 or error.status == HTTP_RATE_LIMIT:
        return True
    return error.status // 100 == 5


def is_rate_limited(error: APIError) -> bool:
    """Only 429 guarantees the server did not act on the request."""
    return error.status == HTTP_RATE_LIMIT


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1,
    retry_on: Callable[[APIError], bool] = is_retryable,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorate an async API call with exponential-backoff retries.

    Client errors (4xx) other than 429 are raised immediately so that 404
    and 409 reach the reconciliation logic untouched. ``retry_on`` narrows
    which errors are retried; creates that the server may already have
    applied pass :func:`is_rate_limited`.
    """

    def decorator(call: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(call)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_retries + 1):
                try:
                    return await call(*args, **kwargs)
                except APIError as e:
                    if not retry_on(e):
                        raise

                    log_with_context(
                        logging.WARNING,
                        f"Encountered {e.status or 'transport error'}: {e.message}",
                        component="http",
                        status=e.status,
                    )

                    if attempt >= max_retries:
                        log_with_context(
                            logging.ERROR,
                            f"Max retries reached. Last error: {e}",
                            component="http",
                        )
                        raise

                    sleep_time = min(
                        retry_delay * (RETRY_BACKOFF_FACTOR**attempt),
                        MAX_RETRY_DELAY_SECONDS,
                    )
                    log_with_context(
                        logging.INFO,
                        f"Retrying in {sleep_time:.1f} seconds...",
                        component="http",
                    )
                    await asyncio.sleep(sleep_time)
            raise RuntimeError("Exited retry loop unexpectedly.")

        return wrapper

    return decorator


def environment_from_secret(secret: Optional[str]) -> str:
    """Derive the deployment environment from a Liveblocks secret key."""
    if secret and secret.startswith(PRODUCTION_SECRET_PREFIX):
        return ENVIRONMENT_PRODUCTION
    return ENVIRONMENT_STAGING

