"""Per-type sensor profiles and alert threshold tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Tuple

from models.records import SensorType


@dataclass(frozen=True, slots=True)
class SensorProfile:
    unit: str
    min_value: float
    max_value: float
    precision: int
    reading_interval_ms: int
    simulation_range: Tuple[float, float]


@dataclass(frozen=True, slots=True)
class ThresholdBand:
    """Inclusive ``[min, max]`` band; a value outside it breaches the tier."""

    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass(frozen=True, slots=True)
class ThresholdTiers:
    critical: ThresholdBand
    warning: ThresholdBand
    info: ThresholdBand


SENSOR_PROFILES: Mapping[SensorType, SensorProfile] = {
    SensorType.temperature: SensorProfile("°C", -40, 85, 1, 1000, (18, 35)),
    SensorType.humidity: SensorProfile("%", 0, 100, 1, 1000, (30, 80)),
    SensorType.pressure: SensorProfile("hPa", 300, 1100, 2, 1000, (980, 1030)),
    SensorType.motion: SensorProfile("detected", 0, 1, 0, 500, (0, 1)),
    SensorType.light: SensorProfile("lux", 0, 100000, 0, 1000, (100, 2000)),
    SensorType.sound: SensorProfile("dB", 0, 140, 1, 500, (30, 80)),
    SensorType.air_quality: SensorProfile("AQI", 0, 500, 0, 2000, (20, 150)),
    SensorType.proximity: SensorProfile("cm", 0, 400, 1, 500, (5, 200)),
}


def _tiers(
    critical: Tuple[float, float],
    warning: Tuple[float, float],
    info: Tuple[float, float],
) -> ThresholdTiers:
    return ThresholdTiers(
        critical=ThresholdBand(*critical),
        warning=ThresholdBand(*warning),
        info=ThresholdBand(*info),
    )


DEFAULT_THRESHOLDS: Mapping[SensorType, ThresholdTiers] = {
    SensorType.temperature: _tiers((-10, 50), (0, 40), (10, 30)),
    SensorType.humidity: _tiers((10, 90), (20, 80), (30, 70)),
    SensorType.pressure: _tiers((950, 1050), (970, 1030), (990, 1020)),
    SensorType.motion: _tiers((0, 1), (0, 1), (0, 1)),
    SensorType.light: _tiers((0, 10000), (50, 5000), (100, 2000)),
    SensorType.sound: _tiers((0, 100), (20, 85), (30, 70)),
    SensorType.air_quality: _tiers((0, 300), (0, 150), (0, 100)),
    SensorType.proximity: _tiers((0, 400), (5, 300), (10, 200)),
}


def missing_sensor_types(table: Mapping[SensorType, object]) -> list[SensorType]:
    return [sensor_type for sensor_type in SensorType if sensor_type not in table]


def get_profile(sensor_type: SensorType) -> SensorProfile:
    return SENSOR_PROFILES[SensorType(sensor_type)]


for _name, _table in (("SENSOR_PROFILES", SENSOR_PROFILES), ("DEFAULT_THRESHOLDS", DEFAULT_THRESHOLDS)):
    _missing = missing_sensor_types(_table)
    if _missing:
        raise RuntimeError(
            f"{_name} is missing entries for: {', '.join(item.value for item in _missing)}"
        )
