from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensor aggregation service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def connect_sensor(self, sensor_id: str, name: str, sensor_type: str, connection_type: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/sensors",
            json={
                "id": sensor_id,
                "name": name,
                "type": sensor_type,
                "connection_type": connection_type,
            },
        ).json()

    def disconnect_sensor(self, sensor_id: str) -> None:
        self._request("DELETE", f"/sensors/{sensor_id}", not_found=f"Sensor {sensor_id} is not connected.")

    def ingest(self, sensor_id: str, value: float, unit: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"value": value}
        if unit:
            payload["unit"] = unit
        return self._request(
            "POST",
            f"/sensors/{sensor_id}/readings",
            json=payload,
            not_found=f"Sensor {sensor_id} is not connected.",
        ).json()

    def get_snapshot(self, sensor_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/sensors/{sensor_id}",
            not_found=f"Sensor {sensor_id} is not connected.",
        ).json()

    def list_alerts(
        self,
        severity: Optional[str] = None,
        acknowledged: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if severity:
            params["severity"] = severity
        if acknowledged is not None:
            params["acknowledged"] = str(acknowledged).lower()
        return self._request("GET", "/alerts", params=params).json()

    def acknowledge_alert(self, alert_id: str) -> None:
        self._request("POST", f"/alerts/{alert_id}/acknowledge")

    def clear_alert(self, alert_id: str) -> None:
        self._request("DELETE", f"/alerts/{alert_id}")

    def clear_all_alerts(self) -> None:
        self._request("DELETE", "/alerts")

    def start_simulation(self, sensor_id: str, interval_ms: Optional[int] = None) -> Dict[str, Any]:
        body = {"interval_ms": interval_ms} if interval_ms is not None else None
        return self._request(
            "POST",
            f"/sensors/{sensor_id}/simulation",
            json=body,
            not_found=f"Sensor {sensor_id} is not connected.",
        ).json()

    def stop_simulation(self, sensor_id: str) -> None:
        self._request(
            "DELETE",
            f"/sensors/{sensor_id}/simulation",
            not_found=f"No simulation running for {sensor_id}.",
        )

    def export(self, fmt: str, sensor_ids: Optional[List[str]] = None) -> str:
        params: Dict[str, Any] = {"format": fmt}
        if sensor_ids:
            params["sensor_id"] = sensor_ids
        return self._request("GET", "/export", params=params).text

    def import_file(self, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        media_type = "application/json" if path.suffix.lower() == ".json" else "text/csv"
        with path.open("rb") as handle:
            return self._request(
                "POST",
                "/import",
                files={"file": (path.name, handle, media_type)},
            ).json()

    def watch(
        self,
        sensor_id: str,
        interval: float,
        timeout: float,
        on_snapshot: Callable[[Dict[str, Any]], None],
    ) -> int:
        """Poll a sensor snapshot until the timeout elapses; returns the number of polls."""
        deadline = time.monotonic() + timeout
        polls = 0
        while time.monotonic() <= deadline:
            on_snapshot(self.get_snapshot(sensor_id))
            polls += 1
            time.sleep(interval)
        return polls

    def _request(self, method: str, url: str, not_found: Optional[str] = None, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except (ValueError, AttributeError):
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
