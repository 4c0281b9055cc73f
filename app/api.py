"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import PlainTextResponse

from app.schemas import (
    Alert,
    AlertCounts,
    AlertCreate,
    AlertSeverity,
    ExportRecordOut,
    ImportSummary,
    IngestResponse,
    Overview,
    ReadingIn,
    ReadingOut,
    SensorConnectRequest,
    SensorOut,
    SensorStatusUpdate,
    SimulationRequest,
    SnapshotOut,
    StatisticsOut,
    SummaryOut,
)
from models.records import SensorDevice, SensorReading, utc_now
from models.sensor_types import get_profile
from services import analysis
from services.aggregation import AggregationService, build_default_service
from services.export import parse_csv, parse_json, records_to_csv
from services.simulator import SimulationScheduler, build_default_scheduler

router = APIRouter()


def get_service() -> AggregationService:
    return build_default_service()


def get_scheduler() -> SimulationScheduler:
    return build_default_scheduler()


def _not_found(exc: KeyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0] if exc.args else str(exc))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorOut,
    summary="Connect a sensor so its readings are aggregated.",
)
async def connect_sensor(
    payload: SensorConnectRequest,
    service: AggregationService = Depends(get_service),
) -> SensorOut:
    device = service.connect(
        SensorDevice(
            id=payload.id,
            name=payload.name,
            type=payload.type,
            connection_type=payload.connection_type,
        )
    )
    return SensorOut.from_device(device)


@router.get("/sensors", response_model=List[SensorOut], summary="List connected sensors.")
async def list_sensors(service: AggregationService = Depends(get_service)) -> List[SensorOut]:
    return [SensorOut.from_device(device) for device in service.connected_sensors()]


@router.delete(
    "/sensors/{sensor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect a sensor, dropping its history but keeping its alerts.",
)
async def disconnect_sensor(
    sensor_id: str,
    service: AggregationService = Depends(get_service),
    scheduler: SimulationScheduler = Depends(get_scheduler),
) -> None:
    scheduler.stop(sensor_id)
    if not service.disconnect(sensor_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} is not connected.",
        )


@router.put("/sensors/{sensor_id}/status", response_model=SensorOut, summary="Report a status change.")
async def update_status(
    sensor_id: str,
    payload: SensorStatusUpdate,
    service: AggregationService = Depends(get_service),
) -> SensorOut:
    try:
        device = service.get_device(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    service.set_status(sensor_id, payload.status)
    return SensorOut.from_device(device)


@router.post(
    "/sensors/{sensor_id}/readings",
    response_model=IngestResponse,
    summary="Ingest a reading for a connected sensor.",
)
async def ingest_reading(
    sensor_id: str,
    payload: ReadingIn,
    service: AggregationService = Depends(get_service),
) -> IngestResponse:
    try:
        device = service.get_device(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc

    sensor_type = payload.sensor_type or device.type
    reading = SensorReading(
        sensor_id=sensor_id,
        timestamp=_as_utc(payload.timestamp) or utc_now(),
        value=payload.value,
        unit=payload.unit or get_profile(device.type).unit,
        quality=payload.quality,
    )
    result = service.ingest(sensor_id, sensor_type, reading)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Reading for sensor {sensor_id!r} was rejected.",
        )
    return IngestResponse(
        snapshot=SnapshotOut.from_snapshot(result.snapshot),
        alerts=result.alerts,
    )


@router.get("/sensors/{sensor_id}", response_model=SnapshotOut, summary="Current reading, history and statistics.")
async def get_snapshot(
    sensor_id: str,
    service: AggregationService = Depends(get_service),
) -> SnapshotOut:
    try:
        snapshot = service.get_snapshot(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return SnapshotOut.from_snapshot(snapshot)


@router.get("/sensors/{sensor_id}/history", response_model=List[ReadingOut], summary="History window, oldest first.")
async def get_history(
    sensor_id: str,
    limit: Optional[int] = Query(None, ge=0),
    smooth: Optional[int] = Query(None, ge=1, description="Moving-average window size."),
    max_points: Optional[int] = Query(None, ge=1, description="Downsample to at most this many readings."),
    service: AggregationService = Depends(get_service),
) -> List[ReadingOut]:
    try:
        window = service.get_history(sensor_id, limit=limit)
    except KeyError as exc:
        raise _not_found(exc) from exc
    if smooth is not None:
        window = analysis.smooth(window, smooth)
    if max_points is not None:
        window = analysis.downsample(window, max_points)
    return [ReadingOut.from_reading(reading) for reading in window]


@router.get("/sensors/{sensor_id}/summary", response_model=SummaryOut, summary="Rounded window summary.")
async def get_summary(
    sensor_id: str,
    service: AggregationService = Depends(get_service),
) -> SummaryOut:
    try:
        device = service.get_device(sensor_id)
        window = service.get_history(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc

    summary = service.statistics.summarize(window)
    latest = window[-1] if window else None
    previous = window[-2] if len(window) > 1 else None
    return SummaryOut(
        sensor_id=sensor_id,
        count=summary.count,
        min=summary.min,
        max=summary.max,
        average=summary.average,
        latest=summary.latest,
        latest_display=analysis.format_value(latest.value, device.type) if latest else None,
        change_rate=round(analysis.change_rate(latest, previous), 2) if latest else 0.0,
    )


@router.get("/sensors/{sensor_id}/statistics", response_model=StatisticsOut)
async def get_statistics(
    sensor_id: str,
    service: AggregationService = Depends(get_service),
) -> StatisticsOut:
    try:
        statistics = service.get_statistics(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return StatisticsOut.from_statistics(statistics)


@router.get("/sensors/{sensor_id}/anomalies", response_model=List[ReadingOut])
async def get_anomalies(
    sensor_id: str,
    threshold: float = Query(2.0, gt=0),
    service: AggregationService = Depends(get_service),
) -> List[ReadingOut]:
    try:
        window = service.get_history(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return [ReadingOut.from_reading(reading) for reading in analysis.detect_anomalies(window, threshold)]


@router.delete(
    "/sensors/{sensor_id}/readings",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear a sensor's history window.",
)
async def clear_readings(
    sensor_id: str,
    service: AggregationService = Depends(get_service),
) -> None:
    try:
        service.clear_data(sensor_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/sensors/{sensor_id}/simulation",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start feeding simulated readings to a sensor.",
)
async def start_simulation(
    sensor_id: str,
    payload: Optional[SimulationRequest] = None,
    scheduler: SimulationScheduler = Depends(get_scheduler),
) -> dict[str, Union[str, float]]:
    interval = None
    if payload is not None and payload.interval_ms is not None:
        interval = payload.interval_ms / 1000
    try:
        seconds = scheduler.start(sensor_id, interval=interval)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"sensor_id": sensor_id, "interval_seconds": seconds}


@router.delete(
    "/sensors/{sensor_id}/simulation",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop simulated readings for a sensor.",
)
async def stop_simulation(
    sensor_id: str,
    scheduler: SimulationScheduler = Depends(get_scheduler),
) -> None:
    if not scheduler.stop(sensor_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No simulation running for sensor {sensor_id!r}.",
        )


@router.get("/alerts", response_model=List[Alert], summary="Alerts, newest first.")
async def list_alerts(
    severity: Optional[AlertSeverity] = None,
    acknowledged: Optional[bool] = None,
    service: AggregationService = Depends(get_service),
) -> List[Alert]:
    return service.get_alerts(severity=severity, acknowledged=acknowledged)


@router.get("/alerts/counts", response_model=AlertCounts)
async def alert_counts(service: AggregationService = Depends(get_service)) -> AlertCounts:
    return service.alert_counts()


@router.post("/alerts", status_code=status.HTTP_201_CREATED, response_model=Alert)
async def create_alert(
    payload: AlertCreate,
    service: AggregationService = Depends(get_service),
) -> Alert:
    return service.raise_alert(
        sensor_id=payload.sensor_id,
        alert_type=payload.type,
        severity=payload.severity,
        message=payload.message,
    )


@router.post(
    "/alerts/{alert_id}/acknowledge",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark an alert as read; repeating it is a no-op.",
)
async def acknowledge_alert(
    alert_id: str,
    service: AggregationService = Depends(get_service),
) -> None:
    service.acknowledge_alert(alert_id)


@router.delete(
    "/alerts/{alert_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an alert; unknown ids are a no-op.",
)
async def clear_alert(
    alert_id: str,
    service: AggregationService = Depends(get_service),
) -> None:
    service.clear_alert(alert_id)


@router.delete("/alerts", status_code=status.HTTP_204_NO_CONTENT, summary="Remove every alert.")
async def clear_all_alerts(service: AggregationService = Depends(get_service)) -> None:
    service.clear_all_alerts()


@router.get(
    "/export",
    response_model=List[ExportRecordOut],
    summary="Export readings as flat records.",
)
async def export_readings(
    format: Literal["json", "csv"] = "json",
    sensor_id: Optional[List[str]] = Query(None),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: AggregationService = Depends(get_service),
) -> Union[List[ExportRecordOut], PlainTextResponse]:
    start_at, end_at = _as_utc(start), _as_utc(end)
    if start_at is not None and end_at is not None and start_at > end_at:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must not be after end.",
        )
    records = service.export(sensor_ids=sensor_id, start=start_at, end=end_at)
    if format == "csv":
        return PlainTextResponse(records_to_csv(records), media_type="text/csv")
    return [ExportRecordOut.from_record(record) for record in records]


@router.post(
    "/import",
    response_model=ImportSummary,
    summary="Replay exported records (CSV or JSON) into connected sensors.",
)
async def import_readings(
    file: UploadFile = File(..., description="CSV or JSON export file."),
    service: AggregationService = Depends(get_service),
) -> ImportSummary:
    contents = await file.read()
    await file.close()
    if not contents:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

    suffix = Path(file.filename or "").suffix.lower()
    try:
        text = contents.decode("utf-8-sig")
        if suffix == ".json" or (file.content_type or "").endswith("json"):
            parsed = parse_json(text)
        else:
            parsed = parse_csv(text)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    ingested = service.replay(parsed.readings)
    return ImportSummary(parsed=len(parsed.readings), ingested=ingested, errors=parsed.errors)


@router.get("/overview", response_model=Overview)
async def overview(service: AggregationService = Depends(get_service)) -> Overview:
    return service.overview()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
