"""Flat export records and parsing them back into readings."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.schemas import ImportRowError
from models.records import ExportRecord, SensorReading

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ("sensor_id", "sensor_name", "sensor_type", "timestamp", "value", "unit")
REQUIRED_COLUMNS = frozenset({"sensor_id", "timestamp", "value", "unit"})


@dataclass
class ImportResult:
    readings: List[SensorReading] = field(default_factory=list)
    errors: List[ImportRowError] = field(default_factory=list)


def record_to_dict(record: ExportRecord) -> Dict[str, Any]:
    return {
        "sensor_id": record.sensor_id,
        "sensor_name": record.sensor_name,
        "sensor_type": record.sensor_type,
        "timestamp": record.timestamp.isoformat(),
        "value": record.value,
        "unit": record.unit,
    }


def records_to_csv(records: Iterable[ExportRecord]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(EXPORT_COLUMNS), lineterminator="\n")
    writer.writeheader()
    for record in records:
        row = record_to_dict(record)
        row["value"] = repr(record.value)
        writer.writerow(row)
    return buffer.getvalue()


def records_to_json(records: Iterable[ExportRecord]) -> str:
    return json.dumps([record_to_dict(record) for record in records], indent=2, ensure_ascii=False)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def parse_csv(text: str) -> ImportResult:
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValueError("CSV file is missing a header row.")

    normalized = {name.lower().strip(): name for name in reader.fieldnames}
    missing = sorted(REQUIRED_COLUMNS - normalized.keys())
    if missing:
        raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

    rows = (
        {column: row.get(source) for column, source in normalized.items()}
        for row in reader
    )
    return _parse_rows(rows, first_row=2)


def parse_json(text: str) -> ImportResult:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON document.") from exc

    if isinstance(payload, Mapping):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        raise ValueError("JSON import expects a list of records.")
    return _parse_rows(payload, first_row=1)


def _parse_rows(rows: Iterable[Any], first_row: int) -> ImportResult:
    result = ImportResult()

    for row_number, row in enumerate(rows, start=first_row):
        reason = _parse_row(row, result)
        if reason is None:
            continue
        result.errors.append(ImportRowError(row_number=row_number, reason=reason))
        logger.warning(
            "Skipping row",
            extra={"row_number": row_number, "reason": reason},
        )

    return result


def _parse_row(row: Any, result: ImportResult) -> Optional[str]:
    if not isinstance(row, Mapping):
        return "record is not an object"

    sensor_raw = _text(row.get("sensor_id"))
    timestamp_raw = _text(row.get("timestamp"))
    value_raw = row.get("value")
    unit_raw = _text(row.get("unit"))

    if not sensor_raw:
        return "missing sensor_id"
    if not timestamp_raw:
        return "missing timestamp"
    try:
        timestamp = parse_timestamp(timestamp_raw)
    except ValueError:
        return "invalid timestamp"

    if value_raw is None or (isinstance(value_raw, str) and not value_raw.strip()):
        return "missing value"
    if isinstance(value_raw, bool):
        return "invalid numeric value"
    try:
        value = float(value_raw)
    except (TypeError, ValueError):
        return "invalid numeric value"

    if not unit_raw:
        return "missing unit"

    result.readings.append(
        SensorReading(sensor_id=sensor_raw, timestamp=timestamp, value=value, unit=unit_raw)
    )
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()
