"""Download tasks and batch results."""

from pathlib import Path
from typing import Iterable, List, Optional, Set

from pydantic import BaseModel, Field


class DownloadTask(BaseModel):
    url: str
    destination: Path
    expected_hash: Optional[str] = None
    retries: int = 3
    mirrors: List[str] = Field(default_factory=list)
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.destination.name

    @property
    def urls(self) -> List[str]:
        return [self.url, *[m for m in self.mirrors if m != self.url]]


class FailedDownload(BaseModel):
    task: DownloadTask
    error: str
    error_type: str


class BatchResult(BaseModel):
    succeeded: List[DownloadTask] = Field(default_factory=list)
    failed: List[FailedDownload] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class DownloadContext:
    """Coordinates already satisfied during one acquisition run.

    Membership is checked before queueing and recorded after success. Two
    workers racing on the same key may both download it; the atomic rename
    keeps that harmless.
    """

    def __init__(self, satisfied: Optional[Iterable[str]] = None):
        self._satisfied: Set[str] = set(satisfied or ())

    def __contains__(self, key: str) -> bool:
        return key in self._satisfied

    def __len__(self) -> int:
        return len(self._satisfied)

    def add(self, key: str) -> None:
        self._satisfied.add(key)
