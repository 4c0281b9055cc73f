"""Synthetic readings used in place of real hardware."""

from __future__ import annotations

import random
from datetime import datetime
from typing import Callable, Optional

from models.records import ReadingQuality, SensorReading, SensorType, utc_now
from models.sensor_types import get_profile

VARIATION_RATIO = 0.1


class ReadingGenerator:
    """Produces plausible next readings for a sensor type, optionally anchored on the previous value."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock

    def next_value(self, sensor_type: SensorType, previous: Optional[float] = None) -> float:
        profile = get_profile(sensor_type)
        low, high = profile.simulation_range

        if previous is not None:
            variation = (high - low) * VARIATION_RATIO
            candidate = previous + self._rng.uniform(-variation / 2, variation / 2)
            value = max(low, min(high, candidate))
        else:
            value = self._rng.uniform(low, high)

        return round(value, profile.precision)

    def quality(self) -> ReadingQuality:
        draw = self._rng.random()
        if draw > 0.8:
            return ReadingQuality.excellent
        if draw > 0.6:
            return ReadingQuality.good
        if draw > 0.3:
            return ReadingQuality.fair
        return ReadingQuality.poor

    def generate(
        self,
        sensor_type: SensorType,
        sensor_id: str,
        previous: Optional[float] = None,
    ) -> SensorReading:
        profile = get_profile(sensor_type)
        return SensorReading(
            sensor_id=sensor_id,
            timestamp=self._clock(),
            value=float(self.next_value(sensor_type, previous)),
            unit=profile.unit,
            quality=self.quality(),
        )
