from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.records import SensorReading, SensorType
from services.analysis import (
    change_rate,
    detect_anomalies,
    downsample,
    format_value,
    is_within_declared_range,
    smooth,
)


def _readings(values) -> list[SensorReading]:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        SensorReading(
            sensor_id="sensor-1",
            timestamp=base + timedelta(seconds=index),
            value=value,
            unit="dB",
        )
        for index, value in enumerate(values)
    ]


def test_detect_anomalies_flags_outliers() -> None:
    readings = _readings([50, 51, 49, 50, 52, 48, 50, 51, 49, 120])

    anomalies = detect_anomalies(readings)

    assert [reading.value for reading in anomalies] == [120]


def test_detect_anomalies_needs_spread_and_size() -> None:
    assert detect_anomalies(_readings([1, 100])) == []
    assert detect_anomalies(_readings([5, 5, 5, 5])) == []


def test_smooth_moving_average() -> None:
    readings = _readings([1, 2, 3, 4, 5])

    smoothed = smooth(readings, window=3)

    assert [reading.value for reading in smoothed] == [2.0, 3.0, 4.0]
    assert smoothed[0].timestamp == readings[2].timestamp


def test_smooth_short_window_unchanged() -> None:
    readings = _readings([1, 2])

    assert smooth(readings, window=5) == readings
    with pytest.raises(ValueError):
        smooth(readings, window=0)


def test_downsample_keeps_every_nth_reading() -> None:
    readings = _readings(range(10))

    assert [reading.value for reading in downsample(readings, 4)] == [0, 3, 6, 9]
    assert downsample(readings, 20) == readings


def test_change_rate_per_second() -> None:
    previous, current = _readings([10, 16])

    assert change_rate(current, previous) == pytest.approx(6.0)
    assert change_rate(current, None) == 0.0


def test_declared_range_and_formatting() -> None:
    assert is_within_declared_range(85, SensorType.temperature)
    assert not is_within_declared_range(85.1, SensorType.temperature)
    assert format_value(1013.256, SensorType.pressure) == "1013.26 hPa"
    assert format_value(21.44, SensorType.temperature, precision=0) == "21 °C"
