from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_SEVERITY_COLORS = {
    "critical": typer.colors.RED,
    "high": typer.colors.RED,
    "warning": typer.colors.YELLOW,
    "medium": typer.colors.YELLOW,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_sensor(payload: Dict[str, Any]) -> None:
    echo_heading("Sensor")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("name", payload.get("name")),
            ("type", payload.get("type")),
            ("connection_type", payload.get("connection_type")),
            ("status", payload.get("status")),
        ]
    )


def render_snapshot(payload: Dict[str, Any], history_rows: int = 10) -> None:
    echo_heading(f"Sensor {payload.get('sensor_id')}")
    current = payload.get("current") or {}
    if current:
        typer.echo(f"current: {current.get('value')} {current.get('unit')} at {current.get('timestamp')}")
    else:
        typer.echo("current: no readings yet")

    statistics = payload.get("statistics") or {}
    typer.echo()
    echo_heading("Statistics")
    echo_key_values(
        [
            ("min", statistics.get("min")),
            ("max", statistics.get("max")),
            ("average", statistics.get("average")),
            ("trend", statistics.get("trend")),
        ]
    )

    history = payload.get("history") or []
    typer.echo()
    echo_heading(f"History ({len(history)} readings)")
    if history:
        for reading in history[-history_rows:] if history_rows else []:
            typer.echo(f"  - {reading.get('timestamp')}: {reading.get('value')} {reading.get('unit')}")
    else:
        typer.echo("No readings recorded.")


def render_alerts(alerts: List[Dict[str, Any]]) -> None:
    echo_heading(f"Alerts ({len(alerts)})")
    if not alerts:
        typer.echo("No alerts.")
        return
    for alert in alerts:
        marker = " " if alert.get("acknowledged") else "*"
        severity = alert.get("severity") or "info"
        typer.secho(
            f"{marker} [{severity}] {alert.get('id')} {alert.get('sensor_id')}: {alert.get('message')}",
            fg=_SEVERITY_COLORS.get(severity),
        )


def render_import(payload: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values([("parsed", payload.get("parsed")), ("ingested", payload.get("ingested"))])
    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")
