from __future__ import annotations

from collections import deque
from functools import lru_cache
from threading import Lock
from typing import Deque, Dict, List, Optional

from models.records import SensorReading
from settings import get_settings


class HistoryStore:
    """Bounded per-sensor reading windows, oldest reading first."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be a positive integer.")
        self.capacity = capacity
        self._windows: Dict[str, Deque[SensorReading]] = {}
        self._lock = Lock()

    def append(self, sensor_id: str, reading: SensorReading) -> None:
        with self._lock:
            window = self._windows.get(sensor_id)
            if window is None:
                window = deque(maxlen=self.capacity)
                self._windows[sensor_id] = window
            # deque(maxlen=...) drops from the left once full
            window.append(reading)

    def get(self, sensor_id: str) -> List[SensorReading]:
        with self._lock:
            window = self._windows.get(sensor_id)
            return list(window) if window else []

    def latest(self, sensor_id: str) -> Optional[SensorReading]:
        with self._lock:
            window = self._windows.get(sensor_id)
            if not window:
                return None
            return window[-1]

    def size(self, sensor_id: str) -> int:
        with self._lock:
            window = self._windows.get(sensor_id)
            return len(window) if window else 0

    def clear(self, sensor_id: str) -> None:
        with self._lock:
            window = self._windows.get(sensor_id)
            if window is not None:
                window.clear()

    def discard(self, sensor_id: str) -> None:
        """Forget the sensor entirely, used when it disconnects."""
        with self._lock:
            self._windows.pop(sensor_id, None)

    def sensor_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._windows)


@lru_cache
def build_default_history(capacity: Optional[int] = None) -> HistoryStore:
    settings = get_settings()
    window = settings.history_capacity if capacity is None else capacity
    return HistoryStore(capacity=window)
