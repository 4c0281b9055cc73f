"""Display and transport preferences shared by every CLI command.

Values come from the global options of ``sensor-cli`` (each backed by an
environment variable through typer), so this module only describes and checks
them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = "http://localhost:8000"
    poll_interval: float = 1.0
    watch_timeout: float = 30.0
    history_rows: int = 10
    watch_history_rows: int = 3
    export_format: ExportFormat = ExportFormat.csv

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "export_format", ExportFormat(self.export_format))
        if self.poll_interval <= 0:
            raise ValueError("Poll interval must be positive.")
        if self.watch_timeout < 0:
            raise ValueError("Watch timeout cannot be negative.")
        if self.history_rows < 0 or self.watch_history_rows < 0:
            raise ValueError("History rows cannot be negative.")

    def rows_for(self, watching: bool) -> int:
        return self.watch_history_rows if watching else self.history_rows

    def export_format_for(self, output: Optional[Path]) -> ExportFormat:
        """Format implied by the output file suffix, else the configured default."""
        if output is not None:
            suffix = output.suffix.lower().lstrip(".")
            if suffix in ExportFormat.__members__:
                return ExportFormat(suffix)
        return self.export_format
