"""Asynchronous URL fetching for plugin configuration and plugin scripts.

The blocking ``urllib`` call runs in a worker thread so the event loop
keeps scheduling other plugin loads while a fetch is in flight.  Any
callable matching :data:`Fetcher` can replace :func:`urllib_fetch`
(tests inject in-memory fakes).
"""
from __future__ import annotations

import asyncio
import logging
import urllib.request
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# ``fetcher(url, timeout_seconds) -> body``
Fetcher = Callable[[str, float], Awaitable[bytes]]


class FetchStatusError(OSError):
    """Raised when a fetch completes with a non-success HTTP status."""

    def __init__(self, url: str, status: int) -> None:
        self.url = url
        self.status = status
        super().__init__(f"GET {url} returned HTTP {status}")


def _fetch_blocking(url: str, timeout_seconds: float) -> bytes:
    req = urllib.request.Request(
        url,
        headers={"Accept": "application/json, text/x-python, */*"},
        method="GET",
    )
    with urllib.request.urlopen(req, timeout=timeout_seconds) as response:  # noqa: S310
        status = getattr(response, "status", 200)
        if not 200 <= status < 300:
            raise FetchStatusError(url, status)
        return response.read()


async def urllib_fetch(url: str, timeout_seconds: float) -> bytes:
    """Fetch *url* and return the response body.

    Raises
    ------
    OSError
        On network failure or a non-success status (``urllib.error.HTTPError``
        and :class:`FetchStatusError` are both ``OSError`` subclasses).
    asyncio.TimeoutError
        When the fetch does not complete within *timeout_seconds*.
    """
    logger.debug("Fetching %s (timeout %.1fs)", url, timeout_seconds)
    return await asyncio.wait_for(
        asyncio.to_thread(_fetch_blocking, url, timeout_seconds),
        timeout=timeout_seconds,
    )
