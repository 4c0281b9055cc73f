"""Statistics over a sensor's history window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from models.records import SensorReading, SensorStatistics, Trend

TREND_WINDOW = 5
TREND_TOLERANCE = 0.05


@dataclass(frozen=True)
class WindowSummary:
    """Display-oriented summary: two-decimal values plus count and latest."""

    count: int = 0
    min: float = 0.0
    max: float = 0.0
    average: float = 0.0
    latest: Optional[float] = None


class StatisticsEngine:
    """Pure statistics component that recomputes from the whole window every call."""

    def compute(self, readings: Sequence[SensorReading]) -> SensorStatistics:
        if not readings:
            return SensorStatistics()

        values = [reading.value for reading in readings]
        return SensorStatistics(
            min=min(values),
            max=max(values),
            average=sum(values) / len(values),
            trend=self.trend(values),
        )

    @staticmethod
    def trend(values: Sequence[float]) -> Trend:
        """Compare the mean of the oldest two against the newest two of the last five values.

        Fewer than five values is always ``stable``.
        """
        if len(values) < TREND_WINDOW:
            return Trend.stable

        recent = values[-TREND_WINDOW:]
        first_half = (recent[0] + recent[1]) / 2
        second_half = (recent[-2] + recent[-1]) / 2

        if second_half > first_half * (1 + TREND_TOLERANCE):
            return Trend.rising
        if second_half < first_half * (1 - TREND_TOLERANCE):
            return Trend.falling
        return Trend.stable

    def summarize(self, readings: Sequence[SensorReading]) -> WindowSummary:
        if not readings:
            return WindowSummary()

        statistics = self.compute(readings)
        return WindowSummary(
            count=len(readings),
            min=round(statistics.min, 2),
            max=round(statistics.max, 2),
            average=round(statistics.average, 2),
            latest=round(readings[-1].value, 2),
        )
