from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_HISTORY_CAPACITY_ENV = "SENSOR_HISTORY_CAPACITY"
_ALERTS_PATH_ENV = "ALERTS_PERSISTENCE_PATH"
_SIMULATION_WORKERS_ENV = "SIMULATION_WORKER_COUNT"
_EXPORT_MAX_RECORDS_ENV = "EXPORT_MAX_RECORDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_HISTORY_CAPACITY = 100
DEFAULT_SIMULATION_WORKERS = 10
DEFAULT_EXPORT_MAX_RECORDS = 10000
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    """Process configuration read from the environment; blank or invalid values fall back to defaults."""

    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    alerts_persistence_path: Optional[str] = None
    simulation_workers: int = DEFAULT_SIMULATION_WORKERS
    export_max_records: int = DEFAULT_EXPORT_MAX_RECORDS
    log_level: str = DEFAULT_LOG_LEVEL


def _env(name: str) -> Optional[str]:
    """Stripped value of ``name``, or None when unset or blank."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_positive_int(name: str, default: int) -> int:
    candidate = _env(name)
    if candidate is None:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    candidate = (_env(_LOG_LEVEL_ENV) or default).upper()
    if candidate not in logging.getLevelNamesMapping():
        return default
    return candidate


@lru_cache
def get_settings() -> Settings:
    return Settings(
        history_capacity=_read_positive_int(_HISTORY_CAPACITY_ENV, DEFAULT_HISTORY_CAPACITY),
        alerts_persistence_path=_env(_ALERTS_PATH_ENV),
        simulation_workers=_read_positive_int(_SIMULATION_WORKERS_ENV, DEFAULT_SIMULATION_WORKERS),
        export_max_records=_read_positive_int(_EXPORT_MAX_RECORDS_ENV, DEFAULT_EXPORT_MAX_RECORDS),
        log_level=_read_log_level(DEFAULT_LOG_LEVEL),
    )
