"""Async HTTP client utilities."""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Sequence

import aiohttp

from ..errors import MetadataUnavailable

logger = logging.getLogger(__name__)


class AsyncHTTPClient:
    """Reusable async HTTP client."""

    def __init__(self, headers: Optional[Dict[str, str]] = None, timeout: float = 15.0,
                 retries: int = 3, retry_delay: float = 1.0):
        self.default_headers = headers or {}
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            headers=self.default_headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def _session(self) -> aiohttp.ClientSession:
        if not self.session:
            raise RuntimeError("AsyncHTTPClient used outside of 'async with'")
        return self.session

    async def get_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """GET request returning the raw body."""
        async with self._session().get(url, headers=headers) as resp:
            resp.raise_for_status()
            return await resp.read()

    async def get_with_fallback(self, urls: Sequence[str],
                                parse: Optional[Callable[[bytes], Any]] = None) -> Any:
        """GET the first endpoint that answers, trying each in rank order.

        Every endpoint gets ``retries`` attempts separated by ``retry_delay``
        seconds before moving on to the next one. With ``parse``, a body it
        rejects with ``ValueError`` counts as a failed attempt.
        """
        last_error: Optional[BaseException] = None
        for url in urls:
            for attempt in range(self.retries):
                try:
                    logger.debug("Attempt %d to fetch %s", attempt + 1, url)
                    body = await self.get_bytes(url)
                    return parse(body) if parse else body
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    last_error = e
                    logger.warning("Attempt %d for %s failed: %s", attempt + 1, url, e or type(e).__name__)
                    if attempt < self.retries - 1:
                        await asyncio.sleep(self.retry_delay)
            logger.warning("Giving up on %s", url)
        raise MetadataUnavailable(urls, str(last_error) if last_error else None)
