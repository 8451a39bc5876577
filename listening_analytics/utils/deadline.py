"""Deadline and cancellation signal for bounded computations"""
import logging
import threading
import time
from typing import Iterable, Iterator, Optional, TypeVar

from listening_analytics.errors import InvalidArgument, RecommendationTimeout

logger = logging.getLogger(__name__)

T = TypeVar('T')

class Deadline:
    """
    Time budget plus an optional cancel event.

    A deadline with neither a budget nor an event never expires.
    """

    def __init__(self, seconds: Optional[float] = None, cancel_event: Optional[threading.Event] = None):
        if seconds is not None and seconds < 0:
            raise InvalidArgument(f"Deadline seconds must be >= 0, got {seconds}")
        self.seconds = seconds
        self.cancel_event = cancel_event
        self.start_time = time.monotonic()

    @classmethod
    def none(cls) -> 'Deadline':
        return cls()

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def remaining(self) -> Optional[float]:
        if self.seconds is None:
            return None
        return max(0.0, self.seconds - self.elapsed())

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def expired(self) -> bool:
        return self.cancelled() or self.remaining() == 0.0

    def check(self, stage: str = "") -> None:
        """Raise RecommendationTimeout if the deadline passed or cancel was requested"""
        if not self.expired():
            return
        stage = stage or "run"
        if self.cancelled():
            logger.warning(f"Computation cancelled during {stage} after {self.elapsed():.3f}s")
            raise RecommendationTimeout(f"Cancelled during {stage}")
        logger.warning(f"Deadline of {self.seconds}s exceeded during {stage}")
        raise RecommendationTimeout(f"Deadline of {self.seconds}s exceeded during {stage}")

    def guard(self, rows: Iterable[T], stage: str, every: int = 500) -> Iterator[T]:
        """Yield rows unchanged, checking the deadline every `every` rows"""
        self.check(stage)
        for count, row in enumerate(rows, start=1):
            if count % every == 0:
                self.check(stage)
            yield row
