"""Download engine."""

from .engine import DownloadEngine, file_sha1
from .models import BatchResult, DownloadContext, DownloadTask, FailedDownload

__all__ = ["DownloadEngine", "file_sha1", "BatchResult", "DownloadContext", "DownloadTask", "FailedDownload"]
