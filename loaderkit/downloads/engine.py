"""Bounded-concurrency download engine.

Files are streamed into a uniquely named temporary sibling, checked against
their expected SHA-1 and only then renamed into place, so a destination path
either holds a complete verified file or nothing new at all.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Iterable, Optional, Union
from urllib.parse import urljoin

import aiofiles
import aiofiles.os
import aiohttp

from ..config import LauncherConfig
from ..errors import DownloadError, DownloadTimeout, HashMismatch, NetworkError
from ..utils.fs import ensure_dir, temp_sibling
from ..utils.progress import ProgressNotifier
from .models import BatchResult, DownloadTask, FailedDownload

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
REDIRECT_STATUSES = (301, 302, 303, 307, 308)


async def file_sha1(file_path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """Streamed SHA-1 of a file."""
    hash_sha1 = hashlib.sha1()
    async with aiofiles.open(file_path, 'rb') as f:
        while chunk := await f.read(chunk_size):
            hash_sha1.update(chunk)
    return hash_sha1.hexdigest()


class DownloadEngine:
    def __init__(self, session: Optional[aiohttp.ClientSession] = None, *,
                 timeout: float = 30.0, retries: int = 3, retry_delay: float = 1.0,
                 min_concurrency: int = 10, max_concurrency: int = 50,
                 chunk_size: int = CHUNK_SIZE, notifier: Optional[ProgressNotifier] = None):
        self.session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.min_concurrency = min_concurrency
        self.max_concurrency = max_concurrency
        self.chunk_size = chunk_size
        self.notifier = notifier or ProgressNotifier()

    @classmethod
    def from_config(cls, config: LauncherConfig, notifier: Optional[ProgressNotifier] = None,
                    session: Optional[aiohttp.ClientSession] = None) -> "DownloadEngine":
        return cls(session, timeout=config.download_timeout, retries=config.retries,
                   retry_delay=config.retry_delay, min_concurrency=config.min_concurrency,
                   max_concurrency=config.max_concurrency, notifier=notifier)

    async def __aenter__(self):
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    def concurrency_for(self, count: int) -> int:
        """Worker count for a queue: grows with the queue, capped."""
        return min(max(self.min_concurrency, count // 100), self.max_concurrency)

    @staticmethod
    async def verify_sha1(file_path: Path, expected_sha1: str) -> bool:
        """Verify SHA1 hash of a file."""
        try:
            return (await file_sha1(file_path)) == expected_sha1.lower()
        except FileNotFoundError:
            return False

    async def download_one(self, url: str, destination: Union[str, Path],
                           expected_hash: Optional[str] = None,
                           retries: Optional[int] = None) -> Path:
        """Download ``url`` to ``destination``, retrying transient failures."""
        destination = Path(destination)
        retries = self.retries if retries is None else retries

        if expected_hash and await self.verify_sha1(destination, expected_hash):
            logger.debug("File already exists with valid hash: %s", destination)
            return destination
        ensure_dir(destination.parent)
        for attempt in range(1, retries + 1):
            try:
                location = await self._fetch(url, destination, expected_hash)
            except DownloadError as e:
                logger.warning("Download attempt %d/%d for %s failed: %s", attempt, retries, url, e)
                if attempt == retries:
                    raise
                await asyncio.sleep(self.retry_delay)
                continue

            if location is None:
                logger.debug("Downloaded %s to %s", url, destination)
                return destination
            logger.debug("Following redirect %s -> %s", url, location)
            return await self.download_one(location, destination, expected_hash, retries - 1)

        raise NetworkError(url, "retry budget exhausted (too many redirects?)")

    async def _fetch(self, url: str, destination: Path, expected_hash: Optional[str]) -> Optional[str]:
        """One request. Returns the redirect target, or None once the file is in place."""
        if self.session is None:
            raise RuntimeError("DownloadEngine used outside of 'async with'")
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.timeout, sock_read=self.timeout)
        tmp = temp_sibling(destination)
        try:
            try:
                async with self.session.get(url, allow_redirects=False, timeout=timeout) as resp:
                    if resp.status in REDIRECT_STATUSES and resp.headers.get("Location"):
                        return urljoin(url, resp.headers["Location"])
                    if not 200 <= resp.status < 300:
                        raise NetworkError(url, resp.reason or "", status=resp.status)

                    hash_sha1 = hashlib.sha1()
                    async with aiofiles.open(tmp, 'wb') as f:
                        async for chunk in resp.content.iter_chunked(self.chunk_size):
                            hash_sha1.update(chunk)
                            await f.write(chunk)
            except (asyncio.TimeoutError, TimeoutError):
                raise DownloadTimeout(url, self.timeout)
            except aiohttp.ClientError as e:
                raise NetworkError(url, str(e) or type(e).__name__)
            except OSError as e:
                raise DownloadError(url, f"I/O error writing {destination}: {e}")

            if expected_hash:
                actual = hash_sha1.hexdigest()
                if actual != expected_hash.lower():
                    raise HashMismatch(url, destination, expected_hash, actual)

            await aiofiles.os.replace(tmp, destination)
            return None
        finally:
            if await aiofiles.os.path.exists(tmp):
                await aiofiles.os.remove(tmp)

    async def download_task(self, task: DownloadTask) -> Path:
        """Download a task, falling back across its mirrors in rank order."""
        *earlier, last = task.urls
        for url in earlier:
            try:
                return await self.download_one(url, task.destination, task.expected_hash, task.retries)
            except DownloadError as e:
                logger.info("Failed to download %s from %s (%s), trying next mirror", task.label, url, e)
        return await self.download_one(last, task.destination, task.expected_hash, task.retries)

    async def download_many(self, tasks: Iterable[DownloadTask], concurrency: Optional[int] = None,
                            phase: str = "download") -> BatchResult:
        """Run tasks through a worker pool of at most ``concurrency`` workers.

        Failures are collected in the result, never raised.
        """
        queue = list(tasks)
        total = len(queue)
        result = BatchResult()
        if not queue:
            return result

        concurrency = concurrency or self.concurrency_for(total)
        workers = max(1, min(concurrency, total))
        pending: asyncio.Queue = asyncio.Queue()
        for task in queue:
            pending.put_nowait(task)

        completed = 0
        logger.info("Starting parallel download of %d files with concurrency %d", total, workers)

        async def worker():
            nonlocal completed
            while True:
                try:
                    task = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    await self.download_task(task)
                    result.succeeded.append(task)
                except (DownloadError, OSError) as e:
                    logger.error("Error downloading %s: %s", task.url, e)
                    result.failed.append(FailedDownload(task=task, error=str(e), error_type=type(e).__name__))
                completed += 1
                self.notifier.emit(phase, completed, total, task.label)

        await asyncio.gather(*(worker() for _ in range(workers)))
        logger.info("Downloaded %d files, failed to download %d files", len(result.succeeded), len(result.failed))
        return result

    async def retry_failures(self, result: BatchResult) -> BatchResult:
        """One sequential pass over the failures of a batch."""
        if not result.failed:
            return result
        logger.info("Retrying %d failed downloads sequentially...", len(result.failed))
        retried = BatchResult(succeeded=list(result.succeeded))
        for failure in result.failed:
            try:
                await self.download_task(failure.task)
                retried.succeeded.append(failure.task)
            except (DownloadError, OSError) as e:
                logger.error("Failed to download %s in retry: %s", failure.task.label, e)
                retried.failed.append(FailedDownload(task=failure.task, error=str(e), error_type=type(e).__name__))
        logger.info("Retry results: %d succeeded, %d failed",
                    len(retried.succeeded) - len(result.succeeded), len(retried.failed))
        return retried
