from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from models.records import ReadingQuality, SensorType
from models.sensor_types import SENSOR_PROFILES
from services.generator import ReadingGenerator

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _generator(seed: int = 7) -> ReadingGenerator:
    return ReadingGenerator(rng=random.Random(seed), clock=lambda: FIXED_NOW)


@pytest.mark.parametrize("sensor_type", list(SensorType))
def test_fresh_values_stay_in_simulation_range(sensor_type: SensorType) -> None:
    generator = _generator()
    low, high = SENSOR_PROFILES[sensor_type].simulation_range

    for _ in range(200):
        value = generator.next_value(sensor_type)
        assert low <= value <= high


def test_anchored_values_move_at_most_half_the_variation() -> None:
    generator = _generator()
    low, high = SENSOR_PROFILES[SensorType.humidity].simulation_range
    half_variation = (high - low) * 0.1 / 2

    for _ in range(200):
        value = generator.next_value(SensorType.humidity, previous=55.0)
        # rounding to one decimal may add up to 0.05
        assert abs(value - 55.0) <= half_variation + 0.05


def test_anchored_values_are_clamped() -> None:
    generator = _generator()

    for _ in range(50):
        assert generator.next_value(SensorType.temperature, previous=35.0) <= 35.0
        assert generator.next_value(SensorType.temperature, previous=18.0) >= 18.0


def test_values_respect_precision() -> None:
    generator = _generator()

    for _ in range(50):
        pressure = generator.next_value(SensorType.pressure)
        light = generator.next_value(SensorType.light)
        assert round(pressure, 2) == pressure
        assert light == int(light)


def test_generate_builds_reading_with_unit_and_clock() -> None:
    reading = _generator().generate(SensorType.sound, "noise-1")

    assert reading.sensor_id == "noise-1"
    assert reading.unit == "dB"
    assert reading.timestamp == FIXED_NOW
    assert isinstance(reading.value, float)
    assert isinstance(reading.quality, ReadingQuality)


def test_same_seed_is_deterministic() -> None:
    first = [_generator(3).next_value(SensorType.light) for _ in range(5)]
    second = [_generator(3).next_value(SensorType.light) for _ in range(5)]

    assert first == second
