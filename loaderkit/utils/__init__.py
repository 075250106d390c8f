"""Common utilities."""

from .async_http import AsyncHTTPClient
from .logger import setup_logging
from .progress import ProgressEvent, ProgressNotifier

__all__ = ["AsyncHTTPClient", "setup_logging", "ProgressEvent", "ProgressNotifier"]
