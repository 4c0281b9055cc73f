"""Ingestion orchestration: history, statistics, alerts and subscriber fan-out."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from threading import Lock, RLock
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from app.schemas import Alert, AlertCounts, AlertSeverity, AlertType, Overview
from datastore.alert_store import AlertStore, build_default_alert_store
from models.records import (
    INGESTING_STATUSES,
    ExportRecord,
    SensorDevice,
    SensorReading,
    SensorSnapshot,
    SensorStatistics,
    SensorStatus,
    SensorType,
    utc_now,
)
from services.aggregator import StatisticsEngine
from services.analysis import is_within_declared_range
from services.alerts import AlertEvaluator
from settings import get_settings
from storage.history import HistoryStore, build_default_history

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[SensorSnapshot], None]


@dataclass
class IngestResult:
    snapshot: SensorSnapshot
    alerts: List[Alert] = field(default_factory=list)


@dataclass
class _SensorSlot:
    device: SensorDevice
    lock: RLock = field(default_factory=RLock)
    statistics: SensorStatistics = field(default_factory=SensorStatistics)
    subscribers: List[UpdateCallback] = field(default_factory=list)


class AggregationService:
    """Single entry point tying history, statistics and alerting together per reading."""

    def __init__(
        self,
        history: HistoryStore,
        statistics: StatisticsEngine,
        evaluator: AlertEvaluator,
        alerts: AlertStore,
        clock: Callable[[], datetime] = utc_now,
        export_limit: int = 10000,
    ) -> None:
        self.history = history
        self.statistics = statistics
        self.evaluator = evaluator
        self.alerts = alerts
        self.export_limit = export_limit
        self._clock = clock
        self._sensors: Dict[str, _SensorSlot] = {}
        self._sensors_lock = Lock()

    # Connection layer

    def connect(self, device: SensorDevice) -> SensorDevice:
        """Register a device and start accepting its readings."""
        with self._sensors_lock:
            slot = self._sensors.get(device.id)
            if slot is None:
                slot = _SensorSlot(device=device)
                self._sensors[device.id] = slot
                self.history.clear(device.id)
            else:
                slot.device.name = device.name
                slot.device.connection_type = device.connection_type
            slot.device.status = SensorStatus.connected
        logger.info(
            "Sensor connected",
            extra={"sensor_id": device.id, "sensor_type": device.type},
        )
        return slot.device

    def set_status(self, sensor_id: str, status: SensorStatus) -> bool:
        status = SensorStatus(status)
        if status is SensorStatus.disconnected:
            return self.disconnect(sensor_id)

        slot = self._slot(sensor_id)
        if slot is None:
            logger.warning(
                "Status update for unknown sensor ignored",
                extra={"sensor_id": sensor_id, "status": status},
            )
            return False
        with slot.lock:
            slot.device.status = status
        return True

    def disconnect(self, sensor_id: str) -> bool:
        """Drop history, statistics and subscriptions; raised alerts are kept."""
        slot = self._slot(sensor_id)
        if slot is None:
            logger.info("Disconnect for unknown sensor ignored", extra={"sensor_id": sensor_id})
            return False

        # lock order is slot lock, then registry lock
        with slot.lock:
            with self._sensors_lock:
                if self._sensors.get(sensor_id) is not slot:
                    logger.info("Disconnect for unknown sensor ignored", extra={"sensor_id": sensor_id})
                    return False
                del self._sensors[sensor_id]
                self.history.discard(sensor_id)
            slot.device.status = SensorStatus.disconnected
            slot.subscribers.clear()
            slot.statistics = SensorStatistics()
        logger.info("Sensor disconnected", extra={"sensor_id": sensor_id})
        return True

    def report_connection_failure(self, device: SensorDevice, reason: str) -> Alert:
        slot = self._slot(device.id)
        if slot is not None:
            with slot.lock:
                slot.device.status = SensorStatus.error
        device.status = SensorStatus.error
        return self.raise_alert(
            sensor_id=device.id,
            alert_type=AlertType.connection_lost,
            severity=AlertSeverity.high,
            message=f"Connection to {device.name} failed: {reason}",
        )

    def connected_sensors(self) -> List[SensorDevice]:
        with self._sensors_lock:
            return [slot.device for slot in self._sensors.values()]

    def get_device(self, sensor_id: str) -> SensorDevice:
        return self._require(sensor_id).device

    def is_active(self, sensor_id: str) -> bool:
        slot = self._slot(sensor_id)
        return slot is not None and slot.device.status in INGESTING_STATUSES

    # Ingestion

    def ingest(
        self,
        sensor_id: str,
        sensor_type: SensorType,
        reading: SensorReading,
    ) -> Optional[IngestResult]:
        """Apply one reading: append, recompute, evaluate, publish.

        Invalid or late readings are logged and dropped; this never raises.
        """
        slot = self._slot(sensor_id)
        if slot is None:
            self._reject(sensor_id, reading, "unknown or disconnected sensor")
            return None

        with slot.lock:
            reason = self._validate(slot, sensor_id, sensor_type, reading)
            if reason is not None:
                self._reject(sensor_id, reading, reason)
                return None

            self.history.append(sensor_id, reading)
            window = self.history.get(sensor_id)
            slot.statistics = self.statistics.compute(window)

            raised = self.evaluator.evaluate(reading, slot.device.type, slot.device.name)
            for alert in raised:
                self.alerts.add(alert)
                logger.info(
                    "Threshold alert raised",
                    extra={
                        "sensor_id": sensor_id,
                        "alert_id": alert.id,
                        "severity": alert.severity,
                        "value": reading.value,
                    },
                )

            snapshot = SensorSnapshot(
                sensor_id=sensor_id,
                current=reading,
                history=window,
                statistics=slot.statistics,
            )
            self._publish(slot, snapshot)

        return IngestResult(snapshot=snapshot, alerts=raised)

    def replay(self, readings: Iterable[SensorReading]) -> int:
        """Ingest previously exported readings into their connected sensors."""
        accepted = 0
        for reading in readings:
            slot = self._slot(reading.sensor_id)
            sensor_type = slot.device.type if slot is not None else None
            if sensor_type is None:
                self._reject(reading.sensor_id, reading, "unknown or disconnected sensor")
                continue
            if self.ingest(reading.sensor_id, sensor_type, reading) is not None:
                accepted += 1
        return accepted

    def clear_data(self, sensor_id: str) -> None:
        slot = self._require(sensor_id)
        with slot.lock:
            self.history.clear(sensor_id)
            slot.statistics = SensorStatistics()

    # Queries

    def get_history(self, sensor_id: str, limit: Optional[int] = None) -> List[SensorReading]:
        self._require(sensor_id)
        window = self.history.get(sensor_id)
        if limit is not None and limit >= 0:
            return window[-limit:] if limit else []
        return window

    def get_statistics(self, sensor_id: str) -> SensorStatistics:
        slot = self._require(sensor_id)
        with slot.lock:
            return slot.statistics

    def get_snapshot(self, sensor_id: str) -> SensorSnapshot:
        slot = self._require(sensor_id)
        with slot.lock:
            window = self.history.get(sensor_id)
            return SensorSnapshot(
                sensor_id=sensor_id,
                current=window[-1] if window else None,
                history=window,
                statistics=slot.statistics,
            )

    def overview(self) -> Overview:
        devices = self.connected_sensors()
        per_sensor = {device.id: self.history.size(device.id) for device in devices}
        types = sorted({device.type for device in devices}, key=lambda item: item.value)
        return Overview(
            total_sensors=len(devices),
            active_sensors=sum(1 for device in devices if device.status in INGESTING_STATUSES),
            total_readings=sum(per_sensor.values()),
            sensor_types=types,
            readings_per_sensor=per_sensor,
        )

    # Subscriptions

    def on_update(self, sensor_id: str, callback: UpdateCallback) -> Callable[[], None]:
        """Subscribe to snapshots for a sensor; returns an unsubscribe callable."""
        slot = self._require(sensor_id)
        with slot.lock:
            slot.subscribers.append(callback)

        def unsubscribe() -> None:
            with slot.lock:
                if callback in slot.subscribers:
                    slot.subscribers.remove(callback)

        return unsubscribe

    # Alerts

    def get_alerts(
        self,
        severity: Optional[AlertSeverity] = None,
        acknowledged: Optional[bool] = None,
    ) -> List[Alert]:
        return self.alerts.list(severity=severity, acknowledged=acknowledged)

    def acknowledge_alert(self, alert_id: str) -> None:
        self.alerts.acknowledge(alert_id)

    def clear_alert(self, alert_id: str) -> None:
        self.alerts.clear(alert_id)

    def clear_all_alerts(self) -> None:
        removed = self.alerts.clear_all()
        logger.info("Cleared all alerts", extra={"record_count": removed})

    @property
    def unread_alert_count(self) -> int:
        return self.alerts.unread_count

    def alert_counts(self) -> AlertCounts:
        return self.alerts.counts()

    def raise_alert(
        self,
        sensor_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
    ) -> Alert:
        alert = Alert(
            id=str(uuid4()),
            sensor_id=sensor_id,
            type=alert_type,
            severity=severity,
            message=message,
            timestamp=self._clock(),
            acknowledged=False,
        )
        self.alerts.add(alert)
        logger.info(
            "Alert raised",
            extra={"sensor_id": sensor_id, "alert_id": alert.id, "severity": severity},
        )
        return alert

    # Export

    def export(
        self,
        sensor_ids: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ExportRecord]:
        """Flatten the history windows of the chosen sensors within an inclusive time range."""
        max_records = self.export_limit if limit is None else limit
        targets = list(sensor_ids) if sensor_ids else [device.id for device in self.connected_sensors()]

        records: List[ExportRecord] = []
        for sensor_id in targets:
            slot = self._slot(sensor_id)
            if slot is None:
                continue
            device = slot.device
            for reading in self.history.get(sensor_id):
                if start is not None and reading.timestamp < start:
                    continue
                if end is not None and reading.timestamp > end:
                    continue
                if len(records) >= max_records:
                    logger.warning(
                        "Export truncated at record limit",
                        extra={"record_count": max_records},
                    )
                    return records
                records.append(
                    ExportRecord(
                        sensor_id=sensor_id,
                        sensor_name=device.name,
                        sensor_type=device.type.value,
                        timestamp=reading.timestamp,
                        value=reading.value,
                        unit=reading.unit,
                    )
                )
        return records

    # Internals

    def _slot(self, sensor_id: str) -> Optional[_SensorSlot]:
        with self._sensors_lock:
            return self._sensors.get(sensor_id)

    def _require(self, sensor_id: str) -> _SensorSlot:
        slot = self._slot(sensor_id)
        if slot is None:
            raise KeyError(f"Sensor {sensor_id!r} is not connected.")
        return slot

    def _validate(
        self,
        slot: _SensorSlot,
        sensor_id: str,
        sensor_type: SensorType,
        reading: SensorReading,
    ) -> Optional[str]:
        """Reason the reading must be dropped, or None. Called under the sensor lock."""
        if slot.device.status not in INGESTING_STATUSES:
            return f"sensor status is {slot.device.status.value}"
        if reading.sensor_id != sensor_id:
            return "reading belongs to another sensor"
        try:
            declared_type = SensorType(sensor_type)
        except ValueError:
            return "unknown sensor type"
        if declared_type is not slot.device.type:
            return "sensor type does not match the connected device"
        value = reading.value
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return "value is not a finite number"
        if not is_within_declared_range(value, slot.device.type):
            return "value outside declared sensor range"
        latest = self.history.latest(sensor_id)
        if latest is not None and reading.timestamp < latest.timestamp:
            return "timestamp earlier than latest reading"
        return None

    @staticmethod
    def _reject(sensor_id: str, reading: SensorReading, reason: str) -> None:
        logger.warning(
            "Rejected reading",
            extra={"sensor_id": sensor_id, "value": reading.value, "reason": reason},
        )

    @staticmethod
    def _publish(slot: _SensorSlot, snapshot: SensorSnapshot) -> None:
        for callback in list(slot.subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(
                    "Subscriber failed while handling update",
                    extra={"sensor_id": snapshot.sensor_id},
                )


@lru_cache
def build_default_service() -> AggregationService:
    """Factory that wires the service from settings."""
    settings = get_settings()
    return AggregationService(
        history=build_default_history(),
        statistics=StatisticsEngine(),
        evaluator=AlertEvaluator(),
        alerts=build_default_alert_store(),
        export_limit=settings.export_max_records,
    )
