"""Read-only helpers over a history window."""

from __future__ import annotations

import math
import statistics
from dataclasses import replace
from typing import List, Optional, Sequence

from models.records import SensorReading, SensorType
from models.sensor_types import get_profile


def detect_anomalies(readings: Sequence[SensorReading], threshold: float = 2.0) -> List[SensorReading]:
    """Readings whose z-score over the window exceeds ``threshold``."""
    if len(readings) < 3:
        return []

    values = [reading.value for reading in readings]
    mean = statistics.fmean(values)
    deviation = statistics.pstdev(values, mu=mean)
    if deviation == 0:
        return []
    return [reading for reading in readings if abs(reading.value - mean) / deviation > threshold]


def smooth(readings: Sequence[SensorReading], window: int = 5) -> List[SensorReading]:
    """Simple moving average; windows shorter than ``window`` are returned unchanged."""
    if window < 1:
        raise ValueError("Smoothing window must be positive.")
    if len(readings) < window:
        return list(readings)

    smoothed: List[SensorReading] = []
    for index in range(window - 1, len(readings)):
        chunk = readings[index - window + 1 : index + 1]
        average = sum(reading.value for reading in chunk) / window
        smoothed.append(replace(readings[index], value=round(average, 2)))
    return smoothed


def downsample(readings: Sequence[SensorReading], max_points: int) -> List[SensorReading]:
    if max_points < 1:
        raise ValueError("max_points must be positive.")
    if len(readings) <= max_points:
        return list(readings)
    step = math.ceil(len(readings) / max_points)
    return list(readings[::step])


def change_rate(current: SensorReading, previous: Optional[SensorReading]) -> float:
    """Units per second between two readings."""
    if previous is None or previous.value == 0:
        return 0.0
    elapsed = (current.timestamp - previous.timestamp).total_seconds()
    if elapsed <= 0:
        return 0.0
    return (current.value - previous.value) / elapsed


def is_within_declared_range(value: float, sensor_type: SensorType) -> bool:
    profile = get_profile(sensor_type)
    return profile.min_value <= value <= profile.max_value


def format_value(value: float, sensor_type: SensorType, precision: Optional[int] = None) -> str:
    profile = get_profile(sensor_type)
    digits = profile.precision if precision is None else precision
    return f"{value:.{digits}f} {profile.unit}"
