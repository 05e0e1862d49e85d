"""Composite 0-100 training efficiency score.

Four sub-scores of at most 25 points each:

- volume efficiency: density against a 50 kg/min baseline
- progression potential: mean of normalized intensity and normalized density
- consistency: 60% set completion rate, 40% rest-time consistency
- time optimization: 50% work:rest ratio against a 2:1 target, 50% active time
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .config import EngineConfig
from .numeric import finite_or_zero, round_half_up, safe_div
from .rest_timing import (
    reconstruct_rest_periods,
    summarize_rest,
    variability_pct,
    work_rest_ratio,
)
from .set_normalizer import (
    NormalizedSet,
    normalize_sets,
    normalize_workout,
    resolve_bodyweight,
)

BASELINE_DENSITY_KG_PER_MIN = 50.0
TARGET_WORK_REST_RATIO = 2.0
MAX_COMPONENT_SCORE = 25


@dataclass(frozen=True)
class EfficiencyInputs:
    density_kg_per_min: float = 0.0
    intensity_pct: float = 0.0
    sets_completed: int = 0
    sets_total: int = 0
    rest_variability: float = 0.0  # coefficient of variation as a fraction
    work_rest_ratio: float = 0.0
    active_time_pct: float = 0.0


@dataclass(frozen=True)
class ScoreComponent:
    component: str
    score: int
    max_score: int
    description: str


@dataclass(frozen=True)
class EfficiencyScore:
    total: int
    volume_efficiency: float
    progression_potential: float
    consistency: float
    time_optimization: float
    breakdown: tuple[ScoreComponent, ...]

    @property
    def rating(self) -> str:
        return rating_label(self.total)


def _unit(value: float) -> float:
    """Clamp to [0, 1]; NaN counts as 0."""
    if value is None or math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


def _capped(value: float) -> float:
    return min(float(MAX_COMPONENT_SCORE), max(0.0, finite_or_zero(value)))


def rating_label(total: int) -> str:
    if total >= 80:
        return "Excellent"
    if total >= 65:
        return "Very Good"
    if total >= 50:
        return "Good"
    if total >= 35:
        return "Fair"
    return "Needs Improvement"


def score_efficiency(inputs: EfficiencyInputs) -> EfficiencyScore:
    density = max(0.0, finite_or_zero(inputs.density_kg_per_min))
    density_factor = density / BASELINE_DENSITY_KG_PER_MIN
    volume_efficiency = _capped(density_factor * MAX_COMPONENT_SCORE)

    intensity_factor = _unit(finite_or_zero(inputs.intensity_pct) / 100)
    progression_potential = _capped(
        (intensity_factor + _unit(density_factor)) / 2 * MAX_COMPONENT_SCORE
    )

    completion_rate = _unit(safe_div(inputs.sets_completed, inputs.sets_total))
    rest_consistency = 1 - _unit(finite_or_zero(inputs.rest_variability))
    consistency = _capped((completion_rate * 0.6 + rest_consistency * 0.4) * MAX_COMPONENT_SCORE)

    # An infinite ratio (work with zero rest) saturates the ratio component.
    ratio = inputs.work_rest_ratio
    ratio_score = 1.0 if ratio == math.inf else _unit(finite_or_zero(ratio) / TARGET_WORK_REST_RATIO)
    active_score = _unit(finite_or_zero(inputs.active_time_pct) / 100)
    time_optimization = _capped((ratio_score * 0.5 + active_score * 0.5) * MAX_COMPONENT_SCORE)

    total = min(
        100,
        round_half_up(volume_efficiency + progression_potential + consistency + time_optimization),
    )
    ratio_text = "inf" if ratio == math.inf else f"{finite_or_zero(ratio):.1f}"
    breakdown = (
        ScoreComponent(
            "Volume Efficiency",
            round_half_up(volume_efficiency),
            MAX_COMPONENT_SCORE,
            f"{density:.1f} kg/min vs {BASELINE_DENSITY_KG_PER_MIN:.0f} kg/min baseline",
        ),
        ScoreComponent(
            "Progression Potential",
            round_half_up(progression_potential),
            MAX_COMPONENT_SCORE,
            f"Based on intensity ({intensity_factor * 100:.0f}%) and density",
        ),
        ScoreComponent(
            "Workout Consistency",
            round_half_up(consistency),
            MAX_COMPONENT_SCORE,
            f"{round_half_up(completion_rate * 100)}% sets completed, "
            f"{round_half_up(rest_consistency * 100)}% rest consistency",
        ),
        ScoreComponent(
            "Time Optimization",
            round_half_up(time_optimization),
            MAX_COMPONENT_SCORE,
            f"{round_half_up(active_score * 100)}% active time, {ratio_text}:1 work:rest",
        ),
    )
    return EfficiencyScore(
        total=total,
        volume_efficiency=volume_efficiency,
        progression_potential=progression_potential,
        consistency=consistency,
        time_optimization=time_optimization,
        breakdown=breakdown,
    )


def efficiency_inputs_from_sets(
    sets: Sequence[NormalizedSet],
    duration_min: float,
    *,
    bodyweight_kg: float,
) -> EfficiencyInputs:
    """Derive scorer inputs from the normalized sets of one or more workouts.

    Rest is reconstructed per workout so pairs never span two sessions.
    """
    candidates = [item for item in sets if not item.is_warmup]
    contributing = [item for item in candidates if item.contributes]
    tonnage_kg = sum(item.tonnage_kg for item in contributing)

    by_workout: dict[str, list[NormalizedSet]] = {}
    for item in sets:
        by_workout.setdefault(item.workout_id, []).append(item)
    rest_values: list[float] = []
    for workout_sets in by_workout.values():
        rest_values.extend(summarize_rest(reconstruct_rest_periods(workout_sets)).rest_periods)

    total_rest_ms = sum(rest_values)
    duration_ms = max(0.0, finite_or_zero(duration_min)) * 60_000
    total_work_ms = max(0.0, duration_ms - total_rest_ms)
    variability = variability_pct(rest_values) / 100

    avg_tonnage_per_set = safe_div(tonnage_kg, len(candidates))
    return EfficiencyInputs(
        density_kg_per_min=safe_div(tonnage_kg, duration_min),
        intensity_pct=safe_div(avg_tonnage_per_set, resolve_bodyweight(bodyweight_kg)) * 100,
        sets_completed=sum(1 for item in candidates if item.completed),
        sets_total=len(candidates),
        rest_variability=variability,
        work_rest_ratio=work_rest_ratio(total_work_ms, total_rest_ms),
        active_time_pct=safe_div(total_work_ms, duration_ms) * 100,
    )


def efficiency_inputs_for_workout(
    workout: Mapping[str, Any],
    sets: Sequence[Mapping[str, Any] | NormalizedSet],
    config: EngineConfig | None = None,
) -> EfficiencyInputs:
    config = config or EngineConfig()
    normalized_workout = normalize_workout(workout)
    workout_sets = [
        item
        for item in normalize_sets(sets, bodyweight_kg=config.bodyweight_kg)
        if item.workout_id == normalized_workout.workout_id
    ]
    return efficiency_inputs_from_sets(
        workout_sets,
        normalized_workout.duration_min,
        bodyweight_kg=config.bodyweight_kg,
    )
