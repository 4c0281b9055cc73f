"""Pydantic schemas for alerts and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from models.records import (
    ConnectionType,
    ExportRecord,
    ReadingQuality,
    SensorDevice,
    SensorReading,
    SensorSnapshot,
    SensorStatistics,
    SensorStatus,
    SensorType,
    Trend,
)


class AlertType(str, Enum):
    threshold_exceeded = "threshold_exceeded"
    connection_lost = "connection_lost"
    low_battery = "low_battery"
    custom = "custom"


class AlertSeverity(str, Enum):
    """Severities exposed via the API; the evaluator only raises critical and warning."""

    critical = "critical"
    warning = "warning"
    info = "info"
    low = "low"
    medium = "medium"
    high = "high"


class Alert(BaseModel):
    """An alert raised for a sensor, persisted by the alert store."""

    id: str
    sensor_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime
    acknowledged: bool = False


class AlertCounts(BaseModel):
    total: int = Field(..., ge=0)
    unread: int = Field(..., ge=0)
    critical: int = Field(..., ge=0)
    warning: int = Field(..., ge=0)
    info: int = Field(..., ge=0)


class AlertCreate(BaseModel):
    """Payload for an externally configured alert."""

    sensor_id: str = Field(..., min_length=1)
    type: AlertType = AlertType.custom
    severity: AlertSeverity = AlertSeverity.info
    message: str = Field(..., min_length=1)


class SensorConnectRequest(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: SensorType
    connection_type: ConnectionType = ConnectionType.wifi


class SensorStatusUpdate(BaseModel):
    status: SensorStatus


class SensorOut(BaseModel):
    id: str
    name: str
    type: SensorType
    connection_type: ConnectionType
    status: SensorStatus

    @classmethod
    def from_device(cls, device: SensorDevice) -> "SensorOut":
        return cls(
            id=device.id,
            name=device.name,
            type=device.type,
            connection_type=device.connection_type,
            status=device.status,
        )


class ReadingIn(BaseModel):
    """A reading submitted by the device layer; timestamp defaults to now."""

    value: float
    unit: Optional[str] = None
    timestamp: Optional[datetime] = None
    quality: Optional[ReadingQuality] = None
    sensor_type: Optional[SensorType] = None

    @field_validator("value", mode="before")
    @classmethod
    def reject_boolean_value(cls, value):
        if isinstance(value, bool):
            raise ValueError("value must be a number, not a boolean")
        return value


class ReadingOut(BaseModel):
    sensor_id: str
    timestamp: datetime
    value: float
    unit: str
    quality: Optional[ReadingQuality] = None

    @classmethod
    def from_reading(cls, reading: SensorReading) -> "ReadingOut":
        return cls(
            sensor_id=reading.sensor_id,
            timestamp=reading.timestamp,
            value=reading.value,
            unit=reading.unit,
            quality=reading.quality,
        )


class StatisticsOut(BaseModel):
    min: float
    max: float
    average: float
    trend: Trend

    @classmethod
    def from_statistics(cls, statistics: SensorStatistics) -> "StatisticsOut":
        return cls(
            min=statistics.min,
            max=statistics.max,
            average=statistics.average,
            trend=statistics.trend,
        )


class SummaryOut(BaseModel):
    """Display-oriented window summary with the latest value pre-formatted."""

    sensor_id: str
    count: int = Field(..., ge=0)
    min: float
    max: float
    average: float
    latest: Optional[float] = None
    latest_display: Optional[str] = None
    change_rate: float = 0.0


class SnapshotOut(BaseModel):
    sensor_id: str
    current: Optional[ReadingOut] = None
    history: List[ReadingOut] = Field(default_factory=list)
    statistics: StatisticsOut

    @classmethod
    def from_snapshot(cls, snapshot: SensorSnapshot) -> "SnapshotOut":
        return cls(
            sensor_id=snapshot.sensor_id,
            current=ReadingOut.from_reading(snapshot.current) if snapshot.current else None,
            history=[ReadingOut.from_reading(item) for item in snapshot.history],
            statistics=StatisticsOut.from_statistics(snapshot.statistics),
        )


class IngestResponse(BaseModel):
    snapshot: SnapshotOut
    alerts: List[Alert] = Field(default_factory=list)


class SimulationRequest(BaseModel):
    interval_ms: Optional[int] = Field(default=None, ge=100)


class ExportRecordOut(BaseModel):
    sensor_id: str
    sensor_name: str
    sensor_type: str
    timestamp: datetime
    value: float
    unit: str

    @classmethod
    def from_record(cls, record: ExportRecord) -> "ExportRecordOut":
        return cls(
            sensor_id=record.sensor_id,
            sensor_name=record.sensor_name,
            sensor_type=record.sensor_type,
            timestamp=record.timestamp,
            value=record.value,
            unit=record.unit,
        )


class ImportRowError(BaseModel):
    """Details about an imported row that failed validation or parsing."""

    row_number: int = Field(..., ge=1)
    reason: str


class ImportSummary(BaseModel):
    parsed: int = Field(..., ge=0)
    ingested: int = Field(..., ge=0)
    errors: List[ImportRowError] = Field(default_factory=list)


class Overview(BaseModel):
    total_sensors: int = Field(..., ge=0)
    active_sensors: int = Field(..., ge=0)
    total_readings: int = Field(..., ge=0)
    sensor_types: List[SensorType] = Field(default_factory=list)
    readings_per_sensor: Dict[str, int] = Field(default_factory=dict)
