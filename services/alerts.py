"""Threshold evaluation for incoming readings."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Mapping, Optional
from uuid import uuid4

from app.schemas import Alert, AlertSeverity, AlertType
from models.records import SensorReading, SensorType, utc_now
from models.sensor_types import DEFAULT_THRESHOLDS, ThresholdTiers, missing_sensor_types


class AlertEvaluator:
    """Checks readings against a three-tier threshold table.

    A value outside the ``critical`` band raises a critical alert, otherwise a
    value outside the ``warning`` band raises a warning. The ``info`` band is
    informational only. Sustained breaches are not debounced: every breaching
    reading yields its own alert.
    """

    def __init__(
        self,
        thresholds: Optional[Mapping[SensorType, ThresholdTiers]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        table = dict(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
        missing = missing_sensor_types(table)
        if missing:
            raise ValueError(
                "Threshold table is missing sensor types: "
                + ", ".join(item.value for item in missing)
            )
        self._thresholds = table
        self._clock = clock

    def thresholds_for(self, sensor_type: SensorType) -> ThresholdTiers:
        return self._thresholds[SensorType(sensor_type)]

    def level(self, value: float, sensor_type: SensorType) -> AlertSeverity:
        tiers = self.thresholds_for(sensor_type)
        if not tiers.critical.contains(value):
            return AlertSeverity.critical
        if not tiers.warning.contains(value):
            return AlertSeverity.warning
        return AlertSeverity.info

    def evaluate(
        self,
        reading: SensorReading,
        sensor_type: SensorType,
        sensor_name: Optional[str] = None,
    ) -> List[Alert]:
        severity = self.level(reading.value, sensor_type)
        if severity is AlertSeverity.info:
            return []

        name = sensor_name or reading.sensor_id
        return [
            Alert(
                id=str(uuid4()),
                sensor_id=reading.sensor_id,
                type=AlertType.threshold_exceeded,
                severity=severity,
                message=f"{name}: {reading.value} {reading.unit}",
                timestamp=self._clock(),
                acknowledged=False,
            )
        ]
