from __future__ import annotations

from models.records import SensorType
from models.sensor_types import (
    DEFAULT_THRESHOLDS,
    SENSOR_PROFILES,
    ThresholdBand,
    get_profile,
    missing_sensor_types,
)


def test_tables_cover_every_sensor_type() -> None:
    assert missing_sensor_types(SENSOR_PROFILES) == []
    assert missing_sensor_types(DEFAULT_THRESHOLDS) == []


def test_missing_sensor_types_reports_gaps() -> None:
    partial = {SensorType.temperature: object()}

    missing = missing_sensor_types(partial)

    assert SensorType.temperature not in missing
    assert len(missing) == len(SensorType) - 1


def test_band_is_inclusive() -> None:
    band = ThresholdBand(-10, 35)

    assert band.contains(-10)
    assert band.contains(35)
    assert not band.contains(35.01)
    assert not band.contains(-10.5)


def test_reading_intervals() -> None:
    assert get_profile(SensorType.temperature).reading_interval_ms == 1000
    assert get_profile(SensorType.motion).reading_interval_ms == 500
    assert get_profile(SensorType.air_quality).reading_interval_ms == 2000


def test_get_profile_accepts_plain_strings() -> None:
    assert get_profile("humidity").unit == "%"  # type: ignore[arg-type]
