"""Rest-period reconstruction between consecutive sets.

rest[n] = start(n + 1) - complete(n) when both timestamps exist; otherwise the
legacy rest duration stored on set n + 1 is used. Values outside [0, 30 min)
are dropped, never clamped.
"""

from __future__ import annotations

import logging
import math
import statistics
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from .logging import metrics_extra
from .set_normalizer import NormalizedSet, normalize_sets, parse_timestamp, to_float, to_int

logger = logging.getLogger(__name__)

MAX_REST_MS = 30 * 60 * 1000
MAX_SET_DURATION_MS = 10 * 60 * 1000

DataQuality = Literal["high", "medium", "low"]
TimingSummary = Literal["actual", "mixed", "estimated"]


@dataclass(frozen=True)
class RestPeriod:
    from_set_number: int
    to_set_number: int
    rest_ms: float
    timing_source: str


@dataclass(frozen=True)
class RestReconstruction:
    periods: tuple[RestPeriod, ...]
    actual_pairs: int
    total_pairs: int
    discarded_pairs: int


@dataclass(frozen=True)
class RestTimingResult:
    total_rest_ms: float
    average_rest_ms: float
    median_rest_ms: float
    variability_pct: float
    rest_periods: tuple[float, ...]
    has_accurate_timing: bool
    data_quality: DataQuality
    timing_source: TimingSummary
    coverage_pct: float


@dataclass(frozen=True)
class WorkoutTimingMetrics:
    workout_id: str
    total_work_ms: float
    total_rest_ms: float
    work_rest_ratio: float
    density_kg_per_min: float
    avg_rest_between_sets_ms: float
    timing_quality: DataQuality


@dataclass(frozen=True)
class TimingValidation:
    is_valid: bool
    issues: tuple[str, ...]
    recommendations: tuple[str, ...]


def _ordering_instant(item: NormalizedSet) -> datetime | None:
    return item.completed_at or item.started_at


def order_sets(sets: Iterable[NormalizedSet]) -> list[NormalizedSet]:
    """Order by completion time, falling back to set number.

    When any set lacks both timestamps the whole workout is ordered by set
    number; mixing timed and untimed sets in one time axis would interleave
    them arbitrarily.
    """
    items = list(sets)
    if items and all(_ordering_instant(item) is not None for item in items):
        return sorted(items, key=lambda item: (_ordering_instant(item), item.set_number))
    return sorted(items, key=lambda item: item.set_number)


def _fallback_source(next_set: NormalizedSet) -> str:
    return "manual" if next_set.timing_source == "manual" else "estimated"


def reconstruct_rest_periods(sets: Sequence[NormalizedSet]) -> RestReconstruction:
    """Build one rest period per adjacent pair of completed sets of a workout."""
    ordered = order_sets(item for item in sets if item.completed)
    periods: list[RestPeriod] = []
    actual_pairs = 0
    discarded = 0

    for current, following in zip(ordered, ordered[1:]):
        if current.completed_at is not None and following.started_at is not None:
            rest_ms = (following.started_at - current.completed_at).total_seconds() * 1000.0
            if 0 <= rest_ms < MAX_REST_MS:
                periods.append(
                    RestPeriod(current.set_number, following.set_number, rest_ms, "actual")
                )
                actual_pairs += 1
                logger.debug(
                    "rest period from timestamps",
                    extra=metrics_extra(
                        workout_id=current.workout_id,
                        from_set=current.set_number,
                        to_set=following.set_number,
                        rest_ms=rest_ms,
                    ),
                )
            else:
                discarded += 1
                logger.debug(
                    "discarding out-of-range rest period",
                    extra=metrics_extra(
                        workout_id=current.workout_id,
                        from_set=current.set_number,
                        to_set=following.set_number,
                        rest_ms=rest_ms,
                    ),
                )
            continue

        if following.rest_seconds is None or following.rest_seconds <= 0:
            continue
        rest_ms = following.rest_seconds * 1000.0
        if rest_ms < MAX_REST_MS:
            periods.append(
                RestPeriod(
                    current.set_number,
                    following.set_number,
                    rest_ms,
                    _fallback_source(following),
                )
            )
        else:
            discarded += 1
            logger.debug(
                "discarding out-of-range legacy rest",
                extra=metrics_extra(
                    workout_id=current.workout_id,
                    from_set=current.set_number,
                    to_set=following.set_number,
                    rest_ms=rest_ms,
                ),
            )

    return RestReconstruction(
        periods=tuple(periods),
        actual_pairs=actual_pairs,
        total_pairs=max(0, len(ordered) - 1),
        discarded_pairs=discarded,
    )


def classify_data_quality(actual_pairs: int, total_pairs: int) -> DataQuality:
    accuracy = actual_pairs / max(1, total_pairs)
    if accuracy >= 0.8:
        return "high"
    if accuracy >= 0.5:
        return "medium"
    return "low"


def summarize_timing_source(actual_pairs: int, total_pairs: int) -> TimingSummary:
    if total_pairs > 0 and actual_pairs == total_pairs:
        return "actual"
    if actual_pairs > 0:
        return "mixed"
    return "estimated"


def variability_pct(values: Sequence[float]) -> float:
    """Coefficient of variation (population) as a percentage; 0 without a positive mean."""
    if not values:
        return 0.0
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(values) / mean * 100


def summarize_rest(reconstruction: RestReconstruction) -> RestTimingResult:
    rest_values = tuple(period.rest_ms for period in reconstruction.periods)
    data_quality = classify_data_quality(reconstruction.actual_pairs, reconstruction.total_pairs)
    timing_source = summarize_timing_source(
        reconstruction.actual_pairs, reconstruction.total_pairs
    )
    coverage_pct = (
        len(rest_values) / reconstruction.total_pairs * 100
        if reconstruction.total_pairs > 0
        else 0.0
    )

    if not rest_values:
        return RestTimingResult(
            total_rest_ms=0.0,
            average_rest_ms=0.0,
            median_rest_ms=0.0,
            variability_pct=0.0,
            rest_periods=(),
            has_accurate_timing=False,
            data_quality=data_quality,
            timing_source=timing_source,
            coverage_pct=coverage_pct,
        )

    total = sum(rest_values)
    average = total / len(rest_values)
    return RestTimingResult(
        total_rest_ms=total,
        average_rest_ms=average,
        median_rest_ms=statistics.median(rest_values),
        variability_pct=variability_pct(rest_values),
        rest_periods=rest_values,
        has_accurate_timing=reconstruction.actual_pairs > 0,
        data_quality=data_quality,
        timing_source=timing_source,
        coverage_pct=coverage_pct,
    )


def calculate_rest_timing(sets: Sequence[NormalizedSet | Mapping[str, Any]]) -> RestTimingResult:
    """Rest statistics for the sets of one workout."""
    result = summarize_rest(reconstruct_rest_periods(normalize_sets(sets)))
    logger.debug(
        "rest timing computed",
        extra=metrics_extra(
            periods=len(result.rest_periods),
            total_rest_ms=result.total_rest_ms,
            data_quality=result.data_quality,
        ),
    )
    return result


def reconstruct_by_workout(
    sets: Sequence[NormalizedSet | Mapping[str, Any]],
) -> dict[str, RestTimingResult]:
    grouped: dict[str, list[NormalizedSet]] = defaultdict(list)
    for item in normalize_sets(sets):
        grouped[item.workout_id].append(item)
    return {
        workout_id: summarize_rest(reconstruct_rest_periods(workout_sets))
        for workout_id, workout_sets in grouped.items()
    }


def work_rest_ratio(total_work_ms: float, total_rest_ms: float) -> float:
    if total_rest_ms > 0:
        return total_work_ms / total_rest_ms
    if total_work_ms > 0:
        return math.inf
    return 0.0


def calculate_workout_timing(
    workout_id: str,
    sets: Sequence[NormalizedSet | Mapping[str, Any]],
    tonnage_kg: float,
    duration_ms: float,
) -> WorkoutTimingMetrics:
    rest = calculate_rest_timing(sets)
    duration_ms = max(0.0, to_float(duration_ms) or 0.0)
    total_work_ms = max(0.0, duration_ms - rest.total_rest_ms)
    duration_minutes = duration_ms / 60_000
    density = (to_float(tonnage_kg) or 0.0) / duration_minutes if duration_minutes > 0 else 0.0

    return WorkoutTimingMetrics(
        workout_id=workout_id,
        total_work_ms=total_work_ms,
        total_rest_ms=rest.total_rest_ms,
        work_rest_ratio=work_rest_ratio(total_work_ms, rest.total_rest_ms),
        density_kg_per_min=density,
        avg_rest_between_sets_ms=rest.average_rest_ms,
        timing_quality=rest.data_quality,
    )


def validate_timing_data(sets: Sequence[NormalizedSet | Mapping[str, Any]]) -> TimingValidation:
    """Report capture gaps and impossible set durations."""
    normalized = normalize_sets(sets)
    issues: list[str] = []
    recommendations: list[str] = []

    if not any(item.started_at is not None for item in normalized):
        issues.append("No set start times recorded")
        recommendations.append("Capture set start times while tracking the workout")
    if not any(item.completed_at is not None for item in normalized):
        issues.append("No set completion times recorded")
        recommendations.append("Capture set completion times while tracking the workout")

    for index, item in enumerate(normalized, start=1):
        duration_ms = item.duration_ms
        if duration_ms is None:
            continue
        if duration_ms < 0:
            issues.append(f"Set {index}: completion time before start time")
        elif duration_ms > MAX_SET_DURATION_MS:
            issues.append(
                f"Set {index}: unusually long set duration ({round(duration_ms / 1000)}s)"
            )

    return TimingValidation(
        is_valid=not issues,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )


def upgrade_legacy_rest(rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Map legacy rows (created_at + rest_time seconds) to the timestamped shape.

    Legacy rows never carry a start time, so the result always falls back to
    the stored duration and is tagged ``estimated``.
    """
    upgraded: list[dict[str, Any]] = []
    for index, row in enumerate(rows):
        rest_time = to_float(row.get("rest_time", row.get("restTime")))
        created_at = parse_timestamp(row.get("created_at", row.get("createdAt")))
        set_number = to_int(row.get("set_number", row.get("setNumber")))
        upgraded.append(
            {
                "id": row.get("id"),
                "workout_id": row.get("workout_id", row.get("workoutId")),
                "exercise_name": row.get("exercise_name", row.get("exerciseName")),
                "set_number": set_number if set_number is not None else index + 1,
                "started_at": None,
                "completed_at": created_at,
                "rest_seconds": rest_time if rest_time is not None and rest_time > 0 else None,
                "timing_source": "estimated",
                "reps": row.get("reps"),
                "weight": row.get("weight"),
                "completed": row.get("completed", True),
            }
        )
    return upgraded
