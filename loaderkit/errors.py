"""Exceptions raised by the acquisition pipeline."""

from pathlib import Path
from typing import List, Optional, Sequence


class LauncherError(Exception):
    """Base class for every loaderkit error."""


class MetadataUnavailable(LauncherError):
    """Every catalog endpoint failed."""

    def __init__(self, urls: Sequence[str], reason: Optional[str] = None):
        self.urls = list(urls)
        self.reason = reason
        message = f"Metadata unavailable from {', '.join(self.urls)}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class VersionNotFound(LauncherError):
    """The requested version id is not listed by the upstream catalog."""

    def __init__(self, version_id: str, catalog: str = "version manifest"):
        self.version_id = version_id
        self.catalog = catalog
        super().__init__(f"Version {version_id} not found in {catalog}")


class DownloadError(LauncherError):
    """A single artifact could not be obtained."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class NetworkError(DownloadError):
    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.status = status
        self.reason = reason
        if status is not None:
            message = f"HTTP status code {status} for {url}"
        else:
            message = f"Network error for {url}: {reason}"
        super().__init__(url, message)


class DownloadTimeout(NetworkError):
    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"request timed out after {timeout}s")


class HashMismatch(DownloadError):
    def __init__(self, url: str, destination: Path, expected: str, actual: str):
        self.destination = destination
        self.expected = expected
        self.actual = actual
        super().__init__(
            url,
            f"Hash verification failed for {destination}: expected {expected}, got {actual}",
        )


class PatchRestoreFailure(LauncherError):
    """Reconciled descriptors could not be put back to their original bytes."""

    def __init__(self, failures: List[str]):
        self.failures = failures
        super().__init__("Failed to restore descriptors: " + "; ".join(failures))
