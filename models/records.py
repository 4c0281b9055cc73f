"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SensorType(str, Enum):
    """Kinds of sensor the dashboard understands."""

    temperature = "temperature"
    humidity = "humidity"
    pressure = "pressure"
    motion = "motion"
    light = "light"
    sound = "sound"
    air_quality = "air_quality"
    proximity = "proximity"


class ConnectionType(str, Enum):
    bluetooth = "bluetooth"
    wifi = "wifi"
    usb = "usb"


class SensorStatus(str, Enum):
    """Connection lifecycle reported by the device layer."""

    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    error = "error"
    reading = "reading"


INGESTING_STATUSES = frozenset({SensorStatus.connected, SensorStatus.reading})


class ReadingQuality(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"


class Trend(str, Enum):
    rising = "rising"
    falling = "falling"
    stable = "stable"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single timestamped value reported by a sensor."""

    sensor_id: str
    timestamp: datetime
    value: float
    unit: str
    quality: Optional[ReadingQuality] = None


@dataclass(frozen=True, slots=True)
class SensorStatistics:
    """Statistics derived from the current history window."""

    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    trend: Trend = Trend.stable


@dataclass(slots=True)
class SensorDevice:
    """Connection-layer view of a device; the engine only relies on id and type."""

    id: str
    name: str
    type: SensorType
    connection_type: ConnectionType = ConnectionType.wifi
    status: SensorStatus = SensorStatus.disconnected


@dataclass(frozen=True, slots=True)
class SensorSnapshot:
    """The ``{current, history, statistics}`` view published after each ingestion."""

    sensor_id: str
    current: Optional[SensorReading]
    history: List[SensorReading] = field(default_factory=list)
    statistics: SensorStatistics = field(default_factory=SensorStatistics)


@dataclass(frozen=True, slots=True)
class ExportRecord:
    """Flat record used when exporting readings out of the engine."""

    sensor_id: str
    sensor_name: str
    sensor_type: str
    timestamp: datetime
    value: float
    unit: str
