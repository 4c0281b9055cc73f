"""Periodic simulated ingestion, one cancellable task per sensor."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import lru_cache
from threading import Event, Lock
from typing import Dict, List, Optional, Set

from models.sensor_types import get_profile
from services.aggregation import AggregationService, build_default_service
from services.generator import ReadingGenerator
from settings import get_settings

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 1.0


class SimulationScheduler:
    """Owns the timer lifecycle of simulated sensors and feeds their readings to the service.

    Every running sensor holds one pool worker for as long as its loop runs, so
    at most ``workers`` sensors can be simulated at once. Starting one more is
    refused instead of queueing a loop that would never tick.
    """

    def __init__(
        self,
        service: AggregationService,
        generator: ReadingGenerator,
        workers: int = 10,
    ) -> None:
        self.service = service
        self.generator = generator
        self.workers = workers
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sensor-sim")
        self._tokens: Dict[str, Event] = {}
        self._futures: Dict[str, Future[None]] = {}
        self._live: Set[Future[None]] = set()
        self._lock = Lock()

    def start(self, sensor_id: str, interval: Optional[float] = None) -> float:
        """Begin ticking for a connected sensor; returns the interval in seconds."""
        device = self.service.get_device(sensor_id)
        if interval is None:
            interval = get_profile(device.type).reading_interval_ms / 1000
        if interval <= 0:
            raise ValueError("Simulation interval must be positive.")

        with self._lock:
            if sensor_id in self._tokens:
                raise ValueError(f"Simulation for sensor {sensor_id!r} is already running.")
            if len(self._live) >= self.workers:
                raise ValueError(
                    f"Simulation capacity reached ({self.workers} sensors); stop another sensor first."
                )
            token = Event()
            future = self.executor.submit(self._run, sensor_id, interval, token)
            self._tokens[sensor_id] = token
            self._futures[sensor_id] = future
            self._live.add(future)
        future.add_done_callback(lambda done, sid=sensor_id, tok=token: self._forget(sid, tok, done))
        logger.info("Simulation started", extra={"sensor_id": sensor_id, "value": interval})
        return interval

    def stop(self, sensor_id: str) -> bool:
        """Cancel a sensor's loop and wait briefly for its worker to free up."""
        with self._lock:
            token = self._tokens.pop(sensor_id, None)
            future = self._futures.pop(sensor_id, None)
        if token is None:
            return False
        token.set()
        if future is not None:
            wait([future], timeout=STOP_TIMEOUT_SECONDS)
            if future.done():
                with self._lock:
                    self._live.discard(future)
        logger.info("Simulation stopped", extra={"sensor_id": sensor_id})
        return True

    def running(self) -> List[str]:
        with self._lock:
            return sorted(self._tokens)

    def tick(self, sensor_id: str) -> bool:
        """Generate and ingest one reading; False once the sensor is gone."""
        if not self.service.is_active(sensor_id):
            return False
        device = self.service.get_device(sensor_id)
        latest = self.service.history.latest(sensor_id)
        reading = self.generator.generate(
            device.type,
            sensor_id,
            previous=latest.value if latest else None,
        )
        self.service.ingest(sensor_id, device.type, reading)
        return True

    def shutdown(self) -> None:
        with self._lock:
            tokens = list(self._tokens.values())
            self._tokens.clear()
            self._futures.clear()
            self._live.clear()
        for token in tokens:
            token.set()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _run(self, sensor_id: str, interval: float, token: Event) -> None:
        while not token.wait(interval):
            try:
                if not self.tick(sensor_id):
                    break
            except KeyError:
                # disconnected between the activity check and the lookup
                break
        logger.debug("Simulation loop exited", extra={"sensor_id": sensor_id})

    def _forget(self, sensor_id: str, token: Event, future: Future[None]) -> None:
        with self._lock:
            self._live.discard(future)
            if self._tokens.get(sensor_id) is token:
                self._tokens.pop(sensor_id, None)
                self._futures.pop(sensor_id, None)


@lru_cache
def build_default_scheduler(workers: Optional[int] = None) -> SimulationScheduler:
    settings = get_settings()
    return SimulationScheduler(
        service=build_default_service(),
        generator=ReadingGenerator(),
        workers=workers or settings.simulation_workers,
    )
