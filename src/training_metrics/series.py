"""Daily time series over per-workout totals."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .base_totals import WorkoutTotals
from .registry import MetricRegistry


@dataclass(frozen=True)
class SeriesPoint:
    day: date
    value: float


def _local_day(record: WorkoutTotals, zone: ZoneInfo) -> date | None:
    if record.started_at is None:
        return None
    return record.started_at.astimezone(zone).date()


def group_by_day(
    records: Sequence[WorkoutTotals],
    timezone_name: str = "UTC",
) -> dict[date, list[WorkoutTotals]]:
    try:
        zone = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        zone = ZoneInfo("UTC")

    by_day: dict[date, list[WorkoutTotals]] = {}
    for record in records:
        day = _local_day(record, zone)
        if day is None:
            continue
        by_day.setdefault(day, []).append(record)
    return by_day


def daily_series(
    records: Sequence[WorkoutTotals],
    metric_id: str,
    registry: MetricRegistry,
    timezone_name: str = "UTC",
) -> list[SeriesPoint]:
    """One point per local day that has workouts, oldest first.

    Ratio metrics are evaluated over the day's summed totals, so density is
    Σ tonnage / Σ duration rather than a mean of per-workout densities. Days
    whose metric has no value (e.g. no rest data) are skipped.
    """
    definition = registry.get(metric_id)
    points: list[SeriesPoint] = []
    for day, day_records in sorted(group_by_day(records, timezone_name).items()):
        value = definition.calculator(day_records)
        if value is None:
            continue
        points.append(SeriesPoint(day=day, value=value))
    return points
