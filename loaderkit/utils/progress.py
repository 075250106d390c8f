"""Coarse progress notifications for UI consumers."""

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    phase: str
    completed: int
    total: int
    current: Optional[str] = None

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return int(self.completed * 100 / self.total)


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressNotifier:
    """Fan-out of progress events to registered callbacks.

    Callbacks run inline and must be quick; a callback that raises is logged
    and otherwise ignored so it can never stall an acquisition run.
    """

    def __init__(self, callbacks: Optional[List[ProgressCallback]] = None):
        self.callbacks: List[ProgressCallback] = list(callbacks or [])

    def subscribe(self, callback: ProgressCallback) -> None:
        self.callbacks.append(callback)

    def emit(self, phase: str, completed: int, total: int, current: Optional[str] = None) -> None:
        if not self.callbacks:
            return
        event = ProgressEvent(phase=phase, completed=completed, total=total, current=current)
        for callback in list(self.callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("Progress callback failed for phase %s", phase)
