"""Canonical base totals over a collection of workouts.

Two input shapes are supported: raw workout/set rows (reduced through the set
normalizer and rest reconstruction) and per-workout totals already computed
upstream. Both end in the same ``BaseTotals`` value.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .config import EngineConfig
from .numeric import finite_or_zero, round2, safe_div
from .rest_timing import reconstruct_rest_periods, summarize_rest
from .set_normalizer import (
    NormalizedSet,
    NormalizedWorkout,
    ensure_rows,
    first_present,
    normalize_sets,
    normalize_workouts,
    parse_timestamp,
    to_float,
)

logger = logging.getLogger(__name__)

_TOTALS_ALIASES: dict[str, tuple[str, ...]] = {
    "sets": ("sets", "total_sets", "totalSets"),
    "reps": ("reps", "total_reps", "totalReps"),
    "duration_min": ("duration_min", "durationMin"),
    "tonnage_kg": ("tonnage_kg", "tonnageKg", "volume_kg", "total_volume_kg", "totalVolumeKg"),
    "density_kg_per_min": ("density_kg_per_min", "densityKgPerMin"),
    "rest_min": ("rest_min", "restMin"),
    "active_min": ("active_min", "activeMin"),
}


@dataclass(frozen=True)
class BaseTotals:
    sets: int = 0
    reps: int = 0
    duration_min: float = 0.0
    tonnage_kg: float = 0.0
    density_kg_per_min: float = 0.0
    rest_min: float | None = None
    active_min: float | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "sets": self.sets,
            "reps": self.reps,
            "duration_min": self.duration_min,
            "tonnage_kg": self.tonnage_kg,
            "density_kg_per_min": self.density_kg_per_min,
        }
        if self.rest_min is not None:
            payload["rest_min"] = self.rest_min
        if self.active_min is not None:
            payload["active_min"] = self.active_min
        return payload


@dataclass(frozen=True)
class WorkoutTotals:
    workout_id: str
    started_at: datetime | None
    sets: int
    reps: int
    tonnage_kg: float
    duration_min: float
    rest_min: float | None = None
    active_min: float | None = None
    timing_quality: str = "low"

    @property
    def density_kg_per_min(self) -> float:
        return round2(safe_div(self.tonnage_kg, self.duration_min))


def density(tonnage_kg: float, duration_min: float) -> float:
    return round2(safe_div(tonnage_kg, duration_min))


def _non_negative(value: Any) -> float | None:
    parsed = to_float(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


def normalize_totals(raw: Mapping[str, Any] | None) -> BaseTotals:
    """Canonicalize an upstream totals payload.

    ``rest_min`` / ``active_min`` of exactly 0 are measured values and are
    kept; only missing or malformed values are omitted.
    """
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise TypeError(f"totals must be a mapping, got {type(raw).__name__}")

    values = {
        field: _non_negative(first_present(raw, *aliases))
        for field, aliases in _TOTALS_ALIASES.items()
    }
    duration_min = round2(values["duration_min"] or 0.0)
    tonnage_kg = round2(values["tonnage_kg"] or 0.0)

    provided_density = values["density_kg_per_min"]
    if provided_density is not None and provided_density > 0:
        density_kg_per_min = round2(provided_density)
    else:
        density_kg_per_min = density(tonnage_kg, duration_min)
        logger.debug("density fallback applied: tonnage_kg=%s duration_min=%s density=%s",
                     tonnage_kg, duration_min, density_kg_per_min)

    rest_min = values["rest_min"]
    active_min = values["active_min"]
    return BaseTotals(
        sets=int(values["sets"] or 0),
        reps=int(values["reps"] or 0),
        duration_min=duration_min,
        tonnage_kg=tonnage_kg,
        density_kg_per_min=density_kg_per_min,
        rest_min=round2(rest_min) if rest_min is not None else None,
        active_min=round2(active_min) if active_min is not None else None,
    )


def _workout_totals(
    workout: NormalizedWorkout,
    workout_sets: Sequence[NormalizedSet],
    *,
    count_incomplete_sets: bool,
) -> WorkoutTotals:
    contributing = [item for item in workout_sets if item.contributes]
    if count_incomplete_sets:
        set_count = sum(1 for item in workout_sets if not item.is_warmup)
    else:
        set_count = len(contributing)

    rest = summarize_rest(reconstruct_rest_periods(workout_sets))
    duration_min = workout.duration_min
    rest_min: float | None = None
    active_min: float | None = None
    if rest.rest_periods:
        rest_min = rest.total_rest_ms / 60_000
        if duration_min > 0:
            active_min = max(0.0, duration_min - rest_min)

    return WorkoutTotals(
        workout_id=workout.workout_id,
        started_at=workout.started_at,
        sets=set_count,
        reps=sum(item.reps for item in contributing),
        tonnage_kg=round2(sum(item.tonnage_kg for item in contributing)),
        duration_min=round2(duration_min),
        rest_min=round2(rest_min) if rest_min is not None else None,
        active_min=round2(active_min) if active_min is not None else None,
        timing_quality=rest.data_quality,
    )


def build_workout_totals(
    workouts: Sequence[Mapping[str, Any] | NormalizedWorkout],
    sets: Sequence[Mapping[str, Any] | NormalizedSet],
    config: EngineConfig | None = None,
    *,
    count_incomplete_sets: bool = False,
) -> list[WorkoutTotals]:
    """One totals record per workout, in input order.

    Sets whose workout id is not among ``workouts`` are ignored.
    """
    config = config or EngineConfig()
    normalized_workouts = normalize_workouts(workouts)
    sets_by_workout: dict[str, list[NormalizedSet]] = defaultdict(list)
    for item in normalize_sets(sets, bodyweight_kg=config.bodyweight_kg):
        sets_by_workout[item.workout_id].append(item)

    return [
        _workout_totals(
            workout,
            sets_by_workout.get(workout.workout_id, []),
            count_incomplete_sets=count_incomplete_sets,
        )
        for workout in normalized_workouts
    ]


def _as_workout_totals(record: WorkoutTotals | Mapping[str, Any]) -> WorkoutTotals:
    if isinstance(record, WorkoutTotals):
        return record
    if not isinstance(record, Mapping):
        raise TypeError(f"totals records must be mappings, got {type(record).__name__}")
    totals = normalize_totals(record)
    return WorkoutTotals(
        workout_id=str(first_present(record, "workout_id", "workoutId", "id") or ""),
        started_at=parse_timestamp(first_present(record, "started_at", "startedAt")),
        sets=totals.sets,
        reps=totals.reps,
        tonnage_kg=totals.tonnage_kg,
        duration_min=totals.duration_min,
        rest_min=totals.rest_min,
        active_min=totals.active_min,
    )


def aggregate_totals(records: Sequence[WorkoutTotals | Mapping[str, Any]]) -> BaseTotals:
    """Sum per-workout records into canonical base totals."""
    ensure_rows(records, name="totals records")
    items = [_as_workout_totals(record) for record in records]

    tonnage_kg = finite_or_zero(sum(item.tonnage_kg for item in items))
    duration_min = finite_or_zero(sum(item.duration_min for item in items))
    rest_values = [item.rest_min for item in items if item.rest_min is not None]
    active_values = [item.active_min for item in items if item.active_min is not None]

    return BaseTotals(
        sets=sum(item.sets for item in items),
        reps=sum(item.reps for item in items),
        duration_min=round2(duration_min),
        tonnage_kg=round2(tonnage_kg),
        density_kg_per_min=density(tonnage_kg, duration_min),
        rest_min=round2(sum(rest_values)) if rest_values else None,
        active_min=round2(sum(active_values)) if active_values else None,
    )


def compute_base_totals(
    workouts: Sequence[Mapping[str, Any] | NormalizedWorkout],
    sets: Sequence[Mapping[str, Any] | NormalizedSet],
    config: EngineConfig | None = None,
    *,
    count_incomplete_sets: bool = False,
) -> BaseTotals:
    return aggregate_totals(
        build_workout_totals(workouts, sets, config, count_incomplete_sets=count_incomplete_sets)
    )
