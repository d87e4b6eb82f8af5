# /basegas/core/history.py
import threading
from collections import deque
from typing import Deque, List, Optional

from basegas.core.models import GasEstimateRecord


class GasHistory:
    """
    Append-only record of gas estimates, owned by a single engine.

    With a capacity set, the oldest record is evicted once it is exceeded.
    ``total_recorded`` keeps counting evicted records until ``clear()``.
    """
    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity
        self._records: Deque[GasEstimateRecord] = deque(maxlen=capacity)
        self._total = 0
        self._lock = threading.Lock()

    def append(self, record: GasEstimateRecord) -> None:
        with self._lock:
            self._records.append(record)
            self._total += 1

    def recent(self, n: int) -> List[GasEstimateRecord]:
        with self._lock:
            if n >= len(self._records):
                return list(self._records)
            return list(self._records)[-n:]

    def snapshot(self) -> List[GasEstimateRecord]:
        with self._lock:
            return list(self._records)

    @property
    def total_recorded(self) -> int:
        with self._lock:
            return self._total

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._total = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
