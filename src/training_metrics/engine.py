"""Entry point: raw workout/set rows in, one immutable metrics report out."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any

from .base_totals import BaseTotals, WorkoutTotals, aggregate_totals, build_workout_totals
from .config import EngineConfig
from .derived_kpis import DerivedTotals, PrecomputedKpis, resolve_derived_totals
from .efficiency import EfficiencyScore, efficiency_inputs_from_sets, score_efficiency
from .logging import metrics_extra
from .period_averages import PeriodAverages, calculate_period_averages
from .registry import MetricRegistry, build_default_registry
from .rest_timing import RestTimingResult, reconstruct_rest_periods, summarize_rest
from .series import SeriesPoint, daily_series
from .set_normalizer import ensure_rows, normalize_sets, normalize_workouts

logger = logging.getLogger(__name__)


class RowLimitExceeded(ValueError):
    pass


@dataclass(frozen=True)
class TrainingMetricsReport:
    base_totals: BaseTotals
    derived_totals: DerivedTotals
    diagnostics: Mapping[str, str] | None
    per_workout: tuple[WorkoutTotals, ...]
    rest_timing: Mapping[str, RestTimingResult]
    efficiency: EfficiencyScore
    period_averages: Mapping[str, PeriodAverages] | None = None
    series: Mapping[str, tuple[SeriesPoint, ...]] | None = None


def _frozen(mapping: dict | None) -> Mapping | None:
    return MappingProxyType(mapping) if mapping is not None else None


def _canonical(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _canonical(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if hasattr(value, "model_dump"):
        return _canonical(value.model_dump())
    if hasattr(value, "__dataclass_fields__"):
        return {name: _canonical(getattr(value, name)) for name in value.__dataclass_fields__}
    return value


def content_key(*parts: Any) -> str:
    encoded = json.dumps(_canonical(list(parts)), sort_keys=True, default=repr)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class MetricsEngine:
    """Stateless apart from a single memoized (key, report) pair."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: MetricRegistry | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or build_default_registry()
        self._last: tuple[str, TrainingMetricsReport] | None = None

    def _check_inputs(self, workouts: Any, sets: Any) -> None:
        ensure_rows(workouts, name="workouts")
        ensure_rows(sets, name="sets")
        max_rows = self.config.max_rows
        if max_rows is not None and len(workouts) + len(sets) > max_rows:
            logger.warning(
                "row cap exceeded",
                extra=metrics_extra(rows=len(workouts) + len(sets), max_rows=max_rows),
            )
            raise RowLimitExceeded(
                f"{len(workouts) + len(sets)} rows exceed the configured cap of {max_rows}"
            )

    def compute(
        self,
        workouts: Sequence[Mapping[str, Any]],
        sets: Sequence[Mapping[str, Any]],
        precomputed: Mapping[str, Any] | PrecomputedKpis | None = None,
        reference: datetime | str | None = None,
        series_metrics: Sequence[str] = (),
    ) -> TrainingMetricsReport:
        self._check_inputs(workouts, sets)
        for metric_id in series_metrics:
            self.registry.get(metric_id)

        key: str | None = None
        if self.config.memoize:
            key = content_key(
                workouts,
                sets,
                precomputed,
                reference,
                list(series_metrics),
                self.config.cache_key_parts(),
                self.registry.ids(),
            )
            if self._last is not None and self._last[0] == key:
                logger.debug("metrics report served from memo")
                return self._last[1]

        report = self._build_report(workouts, sets, precomputed, reference, series_metrics)
        if key is not None:
            self._last = (key, report)
        return report

    def _build_report(self, workouts, sets, precomputed, reference, series_metrics):
        config = self.config
        normalized_workouts = normalize_workouts(workouts)
        normalized_sets = normalize_sets(sets, bodyweight_kg=config.bodyweight_kg)

        per_workout = build_workout_totals(normalized_workouts, normalized_sets, config)
        base = aggregate_totals(per_workout)
        resolution = resolve_derived_totals(base, precomputed, config)

        known_ids = {workout.workout_id for workout in normalized_workouts}
        sets_by_workout: dict[str, list] = {}
        for item in normalized_sets:
            if item.workout_id in known_ids:
                sets_by_workout.setdefault(item.workout_id, []).append(item)
        rest_timing = {
            workout_id: summarize_rest(reconstruct_rest_periods(workout_sets))
            for workout_id, workout_sets in sets_by_workout.items()
        }

        efficiency = score_efficiency(
            efficiency_inputs_from_sets(
                [item for items in sets_by_workout.values() for item in items],
                base.duration_min,
                bodyweight_kg=config.bodyweight_kg,
            )
        )

        period_averages = None
        if reference is not None:
            period_averages = calculate_period_averages(
                normalized_workouts, normalized_sets, reference, config
            )

        series = None
        if series_metrics:
            series = {
                metric_id: tuple(daily_series(per_workout, metric_id, self.registry, config.timezone))
                for metric_id in series_metrics
            }

        logger.debug(
            "metrics report computed",
            extra=metrics_extra(
                workouts=len(normalized_workouts),
                sets=len(normalized_sets),
                tonnage_kg=base.tonnage_kg,
                efficiency=efficiency.total,
            ),
        )
        return TrainingMetricsReport(
            base_totals=base,
            derived_totals=resolution.derived,
            diagnostics=_frozen(resolution.diagnostics),
            per_workout=tuple(per_workout),
            rest_timing=MappingProxyType(rest_timing),
            efficiency=efficiency,
            period_averages=_frozen(period_averages),
            series=_frozen(series),
        )


def compute_training_metrics(
    workouts: Sequence[Mapping[str, Any]],
    sets: Sequence[Mapping[str, Any]],
    *,
    config: EngineConfig | None = None,
    precomputed: Mapping[str, Any] | PrecomputedKpis | None = None,
    reference: datetime | str | None = None,
) -> TrainingMetricsReport:
    """One-shot computation without memoization."""
    engine = MetricsEngine(config or EngineConfig(memoize=False))
    return engine.compute(workouts, sets, precomputed=precomputed, reference=reference)
