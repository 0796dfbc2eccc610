import threading
from collections import Counter

from ..common.logging import logger


class MetricsService:
    """Counters emitted as log lines; totals kept in-process for the shutdown summary."""

    def __init__(self):
        self._counts = Counter()
        self._lock = threading.Lock()

    def incr(self, name: str, **labels):
        with self._lock:
            self._counts[name] += 1
        logger.info({"metric": name, **labels})

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._counts)
