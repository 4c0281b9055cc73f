from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, ExportFormat
from cli.render import render_alerts, render_import, render_sensor, render_snapshot


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor aggregation service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: str = typer.Option(
        CLIConfig.base_url,
        "--base-url",
        "-b",
        envvar="API_BASE_URL",
        help="Service base URL.",
    ),
    poll_interval: float = typer.Option(
        CLIConfig.poll_interval,
        "--poll-interval",
        envvar="CLI_POLL_INTERVAL",
        min=0.01,
        help="Seconds between refreshes when watching a sensor.",
    ),
    timeout: float = typer.Option(
        CLIConfig.watch_timeout,
        "--timeout",
        envvar="CLI_WATCH_TIMEOUT",
        min=0,
        help="Maximum seconds to keep watching a sensor.",
    ),
    history_rows: int = typer.Option(
        CLIConfig.history_rows,
        "--history-rows",
        envvar="CLI_HISTORY_ROWS",
        min=0,
        help="Recent readings listed by `show`.",
    ),
    export_format: ExportFormat = typer.Option(
        CLIConfig.export_format,
        "--export-format",
        envvar="CLI_EXPORT_FORMAT",
        case_sensitive=False,
        help="Default export format when the output file has no csv/json suffix.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = CLIConfig(
        base_url=base_url,
        poll_interval=poll_interval,
        watch_timeout=timeout,
        history_rows=history_rows,
        export_format=export_format,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("connect")
def connect_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of the sensor."),
    sensor_type: str = typer.Option(..., "--type", "-t", help="Sensor type, e.g. temperature."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Display name (defaults to the id)."),
    connection_type: str = typer.Option("wifi", "--connection", help="bluetooth, wifi or usb."),
    simulate: bool = typer.Option(
        False,
        "--simulate/--no-simulate",
        help="Start simulated readings right after connecting.",
    ),
) -> None:
    """Connect a sensor so the service starts aggregating it."""
    state = _get_state(ctx)
    payload = state.client.connect_sensor(sensor_id, name or sensor_id, sensor_type, connection_type)
    typer.secho(f"Sensor connected. id={payload.get('id')}", fg=typer.colors.GREEN)
    render_sensor(payload)
    if simulate:
        started = state.client.start_simulation(sensor_id)
        typer.echo(f"Simulation running every {started.get('interval_seconds')}s.")


@app.command("disconnect")
def disconnect_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of the sensor."),
) -> None:
    """Disconnect a sensor; its alerts are kept."""
    state = _get_state(ctx)
    state.client.disconnect_sensor(sensor_id)
    typer.secho(f"Sensor {sensor_id} disconnected.", fg=typer.colors.GREEN)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of the sensor."),
    value: float = typer.Argument(..., help="Reading value."),
    unit: Optional[str] = typer.Option(None, "--unit", "-u", help="Override the sensor type's unit."),
) -> None:
    """Submit a single reading."""
    state = _get_state(ctx)
    payload = state.client.ingest(sensor_id, value, unit)
    render_snapshot(payload.get("snapshot") or {})
    alerts = payload.get("alerts") or []
    if alerts:
        typer.echo()
        render_alerts(alerts)


@app.command("show")
def show_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of the sensor."),
    watch: bool = typer.Option(False, "--watch/--no-watch", help="Keep refreshing until the timeout."),
) -> None:
    """Show current reading, statistics and recent history."""
    state = _get_state(ctx)
    if not watch:
        render_snapshot(state.client.get_snapshot(sensor_id), history_rows=state.config.rows_for(watching=False))
        return

    def _render(payload: dict) -> None:
        render_snapshot(payload, history_rows=state.config.rows_for(watching=True))
        typer.echo()

    state.client.watch(
        sensor_id,
        interval=state.config.poll_interval,
        timeout=state.config.watch_timeout,
        on_snapshot=_render,
    )


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    severity: Optional[str] = typer.Option(None, "--severity", "-s", help="Only this severity."),
    unread: bool = typer.Option(False, "--unread", help="Only unacknowledged alerts."),
) -> None:
    """List alerts, newest first."""
    state = _get_state(ctx)
    alerts = state.client.list_alerts(severity=severity, acknowledged=False if unread else None)
    render_alerts(alerts)


@app.command("ack")
def ack_command(
    ctx: typer.Context,
    alert_ids: List[str] = typer.Argument(..., help="Alert identifiers."),
) -> None:
    """Acknowledge one or more alerts."""
    state = _get_state(ctx)
    for alert_id in alert_ids:
        state.client.acknowledge_alert(alert_id)
    typer.secho(f"Acknowledged {len(alert_ids)} alert(s).", fg=typer.colors.GREEN)


@app.command("clear-alert")
def clear_alert_command(
    ctx: typer.Context,
    alert_ids: Optional[List[str]] = typer.Argument(None, help="Alert identifiers."),
    all_alerts: bool = typer.Option(False, "--all", help="Remove every alert."),
) -> None:
    """Remove alerts."""
    state = _get_state(ctx)
    if all_alerts:
        state.client.clear_all_alerts()
        typer.secho("Cleared all alerts.", fg=typer.colors.GREEN)
        return
    if not alert_ids:
        raise typer.BadParameter("Pass alert ids or --all.")
    for alert_id in alert_ids:
        state.client.clear_alert(alert_id)
    typer.secho(f"Cleared {len(alert_ids)} alert(s).", fg=typer.colors.GREEN)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of the sensor."),
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", help="Tick interval in milliseconds."),
    stop: bool = typer.Option(False, "--stop", help="Stop a running simulation."),
) -> None:
    """Start or stop simulated readings for a connected sensor."""
    state = _get_state(ctx)
    if stop:
        state.client.stop_simulation(sensor_id)
        typer.secho(f"Simulation for {sensor_id} stopped.", fg=typer.colors.GREEN)
        return
    payload = state.client.start_simulation(sensor_id, interval_ms)
    typer.secho(
        f"Simulation for {sensor_id} running every {payload.get('interval_seconds')}s.",
        fg=typer.colors.GREEN,
    )


@app.command("export")
def export_command(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", "-o", dir_okay=False, help="Write to a file instead of stdout."),
    fmt: Optional[ExportFormat] = typer.Option(
        None,
        "--format",
        "-f",
        case_sensitive=False,
        help="csv or json; defaults to the output suffix, then --export-format.",
    ),
    sensor_ids: Optional[List[str]] = typer.Option(None, "--sensor", help="Limit to these sensors."),
) -> None:
    """Export readings as flat records."""
    state = _get_state(ctx)
    fmt = fmt or state.config.export_format_for(output)
    content = state.client.export(fmt.value, sensor_ids)
    if output is None:
        typer.echo(content)
        return
    output.write_text(content, encoding="utf-8")
    typer.secho(f"Exported to {output}.", fg=typer.colors.GREEN)


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="CSV or JSON export."),
) -> None:
    """Replay an export file into connected sensors."""
    state = _get_state(ctx)
    render_import(state.client.import_file(file))
