from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import AlertSeverity, AlertType
from datastore.alert_store import AlertStore
from models.records import SensorDevice, SensorReading, SensorStatus, SensorType, Trend
from models.sensor_types import DEFAULT_THRESHOLDS, ThresholdBand, ThresholdTiers
from services.aggregation import AggregationService
from services.aggregator import StatisticsEngine
from services.alerts import AlertEvaluator
from storage.history import HistoryStore

FIXED_NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _service(capacity: int = 100, export_limit: int = 10000) -> AggregationService:
    thresholds = dict(DEFAULT_THRESHOLDS)
    thresholds[SensorType.temperature] = ThresholdTiers(
        critical=ThresholdBand(-10, 35),
        warning=ThresholdBand(0, 30),
        info=ThresholdBand(10, 25),
    )
    return AggregationService(
        history=HistoryStore(capacity=capacity),
        statistics=StatisticsEngine(),
        evaluator=AlertEvaluator(thresholds=thresholds, clock=lambda: FIXED_NOW),
        alerts=AlertStore(),
        clock=lambda: FIXED_NOW,
        export_limit=export_limit,
    )


def _device(sensor_id: str = "temp-1", sensor_type: SensorType = SensorType.temperature) -> SensorDevice:
    return SensorDevice(id=sensor_id, name="Lab", type=sensor_type)


def _reading(value: float, offset: int = 0, sensor_id: str = "temp-1", unit: str = "°C") -> SensorReading:
    return SensorReading(
        sensor_id=sensor_id,
        timestamp=BASE_TIME + timedelta(seconds=offset),
        value=value,
        unit=unit,
    )


def _feed(service: AggregationService, values, sensor_id: str = "temp-1") -> None:
    for index, value in enumerate(values):
        service.ingest(sensor_id, SensorType.temperature, _reading(value, index, sensor_id))


def test_connect_marks_device_connected() -> None:
    service = _service()

    device = service.connect(_device())

    assert device.status is SensorStatus.connected
    assert service.is_active("temp-1")
    assert [item.id for item in service.connected_sensors()] == ["temp-1"]


def test_ingest_updates_history_statistics_and_alerts() -> None:
    service = _service()
    service.connect(_device())

    results = [
        service.ingest("temp-1", SensorType.temperature, _reading(value, index))
        for index, value in enumerate([10, 20, 36])
    ]

    assert all(result is not None for result in results)
    statistics = service.get_statistics("temp-1")
    assert (statistics.min, statistics.max) == (10, 36)
    assert statistics.average == pytest.approx(22.0)
    assert statistics.trend is Trend.stable

    alerts = service.get_alerts()
    assert len(alerts) == 1
    assert alerts[0].severity is AlertSeverity.critical
    assert alerts[0].message == "Lab: 36 °C"
    assert results[-1].alerts[0].id == alerts[0].id  # type: ignore[union-attr]
    assert service.unread_alert_count == 1


def test_snapshot_reflects_latest_reading() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [10, 10, 10, 15, 20])

    snapshot = service.get_snapshot("temp-1")

    assert snapshot.current.value == 20  # type: ignore[union-attr]
    assert [reading.value for reading in snapshot.history] == [10, 10, 10, 15, 20]
    assert snapshot.statistics.trend is Trend.rising


def test_history_is_bounded() -> None:
    service = _service(capacity=3)
    service.connect(_device())
    _feed(service, [1, 2, 3, 4])

    assert [reading.value for reading in service.get_history("temp-1")] == [2, 3, 4]
    assert [reading.value for reading in service.get_history("temp-1", limit=2)] == [3, 4]
    assert service.get_statistics("temp-1").min == 2


def test_empty_sensor_has_zero_statistics() -> None:
    service = _service()
    service.connect(_device())

    snapshot = service.get_snapshot("temp-1")

    assert snapshot.current is None
    assert snapshot.history == []
    assert snapshot.statistics.average == 0
    assert snapshot.statistics.trend is Trend.stable


@pytest.mark.parametrize(
    ("sensor_id", "sensor_type", "reading", "reason"),
    [
        ("temp-1", SensorType.temperature, _reading(math.nan), "value is not a finite number"),
        ("temp-1", SensorType.temperature, _reading(math.inf), "value is not a finite number"),
        ("temp-1", SensorType.temperature, _reading(500.0), "value outside declared sensor range"),
        ("temp-1", SensorType.humidity, _reading(20.0), "sensor type does not match the connected device"),
        ("temp-1", SensorType.temperature, _reading(20.0, sensor_id="other"), "reading belongs to another sensor"),
        ("ghost", SensorType.temperature, _reading(20.0, sensor_id="ghost"), "unknown or disconnected sensor"),
    ],
)
def test_rejected_readings_are_logged_and_leave_state_untouched(
    caplog, sensor_id, sensor_type, reading, reason
) -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [20])

    with caplog.at_level(logging.WARNING, logger="services.aggregation"):
        result = service.ingest(sensor_id, sensor_type, reading)

    assert result is None
    assert [item.value for item in service.get_history("temp-1")] == [20]
    assert service.get_alerts() == []
    rejected = [record for record in caplog.records if record.getMessage() == "Rejected reading"]
    assert rejected and rejected[0].reason == reason


def test_readings_rejected_while_in_error_state(caplog) -> None:
    service = _service()
    service.connect(_device())
    service.set_status("temp-1", SensorStatus.error)

    with caplog.at_level(logging.WARNING, logger="services.aggregation"):
        assert service.ingest("temp-1", SensorType.temperature, _reading(20)) is None

    assert service.get_history("temp-1") == []
    assert any(getattr(record, "reason", "") == "sensor status is error" for record in caplog.records)


def test_reading_status_still_ingests() -> None:
    service = _service()
    service.connect(_device())

    assert service.set_status("temp-1", SensorStatus.reading) is True
    assert service.ingest("temp-1", SensorType.temperature, _reading(20)) is not None


def test_set_status_unknown_sensor_returns_false() -> None:
    assert _service().set_status("ghost", SensorStatus.reading) is False


def test_disconnect_drops_data_but_keeps_alerts() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [20, 40])
    received = []
    service.on_update("temp-1", received.append)

    assert service.disconnect("temp-1") is True

    assert service.connected_sensors() == []
    assert service.history.get("temp-1") == []
    assert len(service.get_alerts()) == 1
    with pytest.raises(KeyError):
        service.get_snapshot("temp-1")
    assert service.ingest("temp-1", SensorType.temperature, _reading(20)) is None
    assert received == []


def test_set_status_disconnected_routes_to_disconnect() -> None:
    service = _service()
    service.connect(_device())

    assert service.set_status("temp-1", SensorStatus.disconnected) is True
    assert not service.is_active("temp-1")
    assert service.disconnect("temp-1") is False


def test_reconnect_starts_with_empty_history() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [20, 21])
    service.disconnect("temp-1")

    service.connect(_device())

    assert service.get_history("temp-1") == []
    assert service.get_statistics("temp-1").max == 0


@pytest.mark.parametrize(
    "query",
    [
        lambda service: service.get_history("ghost"),
        lambda service: service.get_statistics("ghost"),
        lambda service: service.get_snapshot("ghost"),
        lambda service: service.get_device("ghost"),
        lambda service: service.clear_data("ghost"),
        lambda service: service.on_update("ghost", lambda snapshot: None),
    ],
)
def test_unknown_sensor_queries_raise_key_error(query) -> None:
    with pytest.raises(KeyError):
        query(_service())


def test_subscribers_receive_snapshots_until_unsubscribed() -> None:
    service = _service()
    service.connect(_device())
    received = []
    unsubscribe = service.on_update("temp-1", received.append)

    _feed(service, [20, 21])
    unsubscribe()
    unsubscribe()
    service.ingest("temp-1", SensorType.temperature, _reading(22, 5))

    assert [snapshot.current.value for snapshot in received] == [20, 21]
    assert [reading.value for reading in received[-1].history] == [20, 21]


def test_failing_subscriber_does_not_block_others(caplog) -> None:
    service = _service()
    service.connect(_device())
    received = []

    def broken(snapshot) -> None:
        raise RuntimeError("boom")

    service.on_update("temp-1", broken)
    service.on_update("temp-1", received.append)

    with caplog.at_level(logging.ERROR, logger="services.aggregation"):
        result = service.ingest("temp-1", SensorType.temperature, _reading(20))

    assert result is not None
    assert len(received) == 1
    assert any(record.getMessage() == "Subscriber failed while handling update" for record in caplog.records)


def test_clear_data_resets_window_and_statistics() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [20, 30])

    service.clear_data("temp-1")

    assert service.get_history("temp-1") == []
    assert service.get_statistics("temp-1").max == 0
    assert service.is_active("temp-1")


def test_alert_management_passthrough() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [40, 41])
    first, second = service.get_alerts()

    service.acknowledge_alert(first.id)
    service.acknowledge_alert(first.id)
    assert service.unread_alert_count == 1
    assert [alert.id for alert in service.get_alerts(acknowledged=False)] == [second.id]

    service.clear_alert("missing")
    service.clear_alert(second.id)
    assert service.unread_alert_count == 0

    service.clear_all_alerts()
    assert service.get_alerts() == []
    assert service.alert_counts().total == 0


def test_report_connection_failure_raises_high_alert() -> None:
    service = _service()
    device = _device()
    service.connect(device)

    alert = service.report_connection_failure(device, "timeout")

    assert alert.type is AlertType.connection_lost
    assert alert.severity is AlertSeverity.high
    assert alert.timestamp == FIXED_NOW
    assert "timeout" in alert.message
    assert service.get_device("temp-1").status is SensorStatus.error
    assert not service.is_active("temp-1")


def test_overview_counts_sensors_and_readings() -> None:
    service = _service()
    service.connect(_device())
    service.connect(_device("hum-1", SensorType.humidity))
    _feed(service, [20, 21])
    service.set_status("hum-1", SensorStatus.error)

    overview = service.overview()

    assert overview.total_sensors == 2
    assert overview.active_sensors == 1
    assert overview.total_readings == 2
    assert overview.readings_per_sensor == {"temp-1": 2, "hum-1": 0}
    assert overview.sensor_types == [SensorType.humidity, SensorType.temperature]


def test_export_filters_inclusive_time_range() -> None:
    service = _service()
    service.connect(_device())
    _feed(service, [20, 21, 22, 23])

    records = service.export(
        start=BASE_TIME + timedelta(seconds=1),
        end=BASE_TIME + timedelta(seconds=2),
    )

    assert [record.value for record in records] == [21, 22]
    assert records[0].sensor_name == "Lab"
    assert records[0].sensor_type == "temperature"


def test_export_respects_record_limit(caplog) -> None:
    service = _service(export_limit=3)
    service.connect(_device())
    _feed(service, [20, 21, 22, 23, 24])

    with caplog.at_level(logging.WARNING, logger="services.aggregation"):
        records = service.export()

    assert len(records) == 3
    assert any(record.getMessage() == "Export truncated at record limit" for record in caplog.records)
    assert len(service.export(limit=10)) == 5


def test_export_selected_sensors_skips_unknown() -> None:
    service = _service()
    service.connect(_device())
    service.connect(_device("temp-2"))
    _feed(service, [20])
    _feed(service, [30], sensor_id="temp-2")

    records = service.export(sensor_ids=["temp-2", "ghost"])

    assert [(record.sensor_id, record.value) for record in records] == [("temp-2", 30)]


def test_replay_ingests_into_connected_sensors_only() -> None:
    service = _service()
    service.connect(_device())
    readings = [_reading(20, 0), _reading(21, 1), _reading(22, 2, sensor_id="ghost")]

    accepted = service.replay(readings)

    assert accepted == 2
    assert [reading.value for reading in service.get_history("temp-1")] == [20, 21]


def test_reading_older_than_latest_is_rejected(caplog) -> None:
    service = _service()
    service.connect(_device())
    service.ingest("temp-1", SensorType.temperature, _reading(20, offset=3600))

    with caplog.at_level(logging.WARNING, logger="services.aggregation"):
        result = service.ingest("temp-1", SensorType.temperature, _reading(21, offset=0))

    assert result is None
    assert [reading.value for reading in service.get_history("temp-1")] == [20]
    assert any(
        getattr(record, "reason", "") == "timestamp earlier than latest reading" for record in caplog.records
    )
    assert service.ingest("temp-1", SensorType.temperature, _reading(22, offset=3600)) is not None


@pytest.mark.parametrize("value", [True, False])
def test_boolean_values_are_rejected(value) -> None:
    service = _service()
    service.connect(_device())

    assert service.ingest("temp-1", SensorType.temperature, _reading(value)) is None
    assert service.get_history("temp-1") == []


def test_concurrent_ingestion_keeps_windows_bounded_and_ordered() -> None:
    service = _service(capacity=20)
    sensor_ids = [f"temp-{index}" for index in range(4)]
    for sensor_id in sensor_ids:
        service.connect(_device(sensor_id))

    def feed(sensor_id: str, worker: int) -> int:
        accepted = 0
        for step in range(100):
            reading = _reading(20 + worker, offset=step, sensor_id=sensor_id)
            if service.ingest(sensor_id, SensorType.temperature, reading) is not None:
                accepted += 1
        return accepted

    # three writers per sensor, all sensors at once
    jobs = [(sensor_id, worker) for sensor_id in sensor_ids for worker in range(3)]
    with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
        accepted = list(pool.map(lambda job: feed(*job), jobs))

    assert all(count > 0 for count in accepted)
    for sensor_id in sensor_ids:
        window = service.get_history(sensor_id)
        timestamps = [reading.timestamp for reading in window]
        statistics = service.get_statistics(sensor_id)
        assert 0 < len(window) <= 20
        assert timestamps == sorted(timestamps)
        assert statistics.min <= statistics.average <= statistics.max
        assert statistics.max == max(reading.value for reading in window)


def test_reconnect_during_disconnect_keeps_new_window() -> None:
    reconnected = threading.Event()

    class RacingHistory(HistoryStore):
        def __init__(self) -> None:
            super().__init__(capacity=10)
            self.racer: threading.Thread | None = None

        def discard(self, sensor_id: str) -> None:
            if self.racer is None:
                self.racer = threading.Thread(target=reconnect_and_ingest)
                self.racer.start()
                # give the racing connect a chance to run before the discard lands
                self.racer.join(timeout=0.2)
            super().discard(sensor_id)

    history = RacingHistory()
    service = AggregationService(
        history=history,
        statistics=StatisticsEngine(),
        evaluator=AlertEvaluator(),
        alerts=AlertStore(),
    )

    def reconnect_and_ingest() -> None:
        service.connect(_device())
        if service.ingest("temp-1", SensorType.temperature, _reading(25, offset=10)) is not None:
            reconnected.set()

    service.connect(_device())
    _feed(service, [20, 21])

    assert service.disconnect("temp-1") is True
    history.racer.join(timeout=2)  # type: ignore[union-attr]

    assert reconnected.is_set()
    assert [reading.value for reading in service.get_history("temp-1")] == [25]
