"""Per-workout averages over named calendar and rolling windows."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .base_totals import compute_base_totals
from .config import EngineConfig
from .numeric import round_half_up
from .set_normalizer import NormalizedSet, normalize_sets, normalize_workouts, parse_timestamp

ALL_TIME_START = datetime(1970, 1, 1, tzinfo=UTC)

PERIOD_KEYS: tuple[str, ...] = (
    "this_week",
    "this_month",
    "last_7_days",
    "last_30_days",
    "all_time",
)

_PERIOD_LABELS: dict[str, str] = {
    "this_week": "This Week",
    "this_month": "This Month",
    "last_7_days": "Last 7 Days",
    "last_30_days": "Last 30 Days",
    "all_time": "All Time",
}


@dataclass(frozen=True)
class PeriodWindow:
    key: str
    label: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime | None) -> bool:
        return instant is not None and self.start <= instant <= self.end


@dataclass(frozen=True)
class PeriodAverages:
    period_label: str
    start: datetime
    end: datetime
    total_workouts: int
    average_tonnage_per_workout: int
    average_duration_per_workout: int
    average_sets_per_workout: int
    average_reps_per_workout: int


def _zone(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _local_midnight(day, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone)


def period_windows(reference: datetime | str, timezone_name: str = "UTC") -> list[PeriodWindow]:
    """Windows ending at ``reference``; calendar windows align in ``timezone_name``."""
    end = parse_timestamp(reference)
    if end is None:
        raise ValueError(f"reference must be a datetime or ISO timestamp, got {reference!r}")

    zone = _zone(timezone_name)
    local_day = end.astimezone(zone).date()
    week_start = _local_midnight(local_day - timedelta(days=local_day.weekday()), zone)
    month_start = _local_midnight(local_day.replace(day=1), zone)

    starts = {
        "this_week": week_start.astimezone(UTC),
        "this_month": month_start.astimezone(UTC),
        "last_7_days": end - timedelta(days=7),
        "last_30_days": end - timedelta(days=30),
        "all_time": ALL_TIME_START,
    }
    return [PeriodWindow(key, _PERIOD_LABELS[key], starts[key], end) for key in PERIOD_KEYS]


def _empty_averages(window: PeriodWindow) -> PeriodAverages:
    return PeriodAverages(
        period_label=window.label,
        start=window.start,
        end=window.end,
        total_workouts=0,
        average_tonnage_per_workout=0,
        average_duration_per_workout=0,
        average_sets_per_workout=0,
        average_reps_per_workout=0,
    )


def _window_averages(
    window: PeriodWindow,
    workouts: Sequence[Any],
    sets_by_workout: Mapping[str, list[NormalizedSet]],
    config: EngineConfig,
) -> PeriodAverages:
    in_window = [workout for workout in workouts if window.contains(workout.started_at)]
    if not in_window:
        return _empty_averages(window)

    window_sets = [
        item for workout in in_window for item in sets_by_workout.get(workout.workout_id, [])
    ]
    totals = compute_base_totals(in_window, window_sets, config)
    count = len(in_window)

    return PeriodAverages(
        period_label=window.label,
        start=window.start,
        end=window.end,
        total_workouts=count,
        average_tonnage_per_workout=round_half_up(totals.tonnage_kg / count),
        average_duration_per_workout=round_half_up(totals.duration_min / count),
        average_sets_per_workout=round_half_up(totals.sets / count),
        average_reps_per_workout=round_half_up(totals.reps / count),
    )


def calculate_period_averages(
    workouts: Sequence[Mapping[str, Any]],
    sets: Sequence[Mapping[str, Any]],
    reference: datetime | str,
    config: EngineConfig | None = None,
) -> dict[str, PeriodAverages]:
    """Averages per workout for each named window, keyed by ``PERIOD_KEYS``.

    Warmups, uncompleted sets and sets without reps are excluded; bodyweight
    sets without load count at ``config.bodyweight_kg``.
    """
    config = config or EngineConfig()
    normalized_workouts = normalize_workouts(workouts)
    sets_by_workout: dict[str, list[NormalizedSet]] = {}
    for item in normalize_sets(sets, bodyweight_kg=config.bodyweight_kg):
        sets_by_workout.setdefault(item.workout_id, []).append(item)

    return {
        window.key: _window_averages(window, normalized_workouts, sets_by_workout, config)
        for window in period_windows(reference, config.timezone)
    }
