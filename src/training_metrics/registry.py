"""Metric definitions available to series and report builders.

A ``MetricRegistry`` is an ordinary value: build it once at startup with
``build_default_registry()`` and hand it to whatever needs it. There is no
module-level registry, so tests can construct their own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .base_totals import WorkoutTotals, aggregate_totals
from .derived_kpis import (
    AVG_REST_SEC_TIERS,
    SET_EFFICIENCY_TIERS,
    KpiContext,
    PrecomputedKpis,
    resolve_chain,
)

logger = logging.getLogger(__name__)

MetricCalculator = Callable[[Sequence[WorkoutTotals]], float | None]


class UnknownMetricError(KeyError):
    pass


@dataclass(frozen=True)
class MetricDefinition:
    id: str
    units: str
    category: str
    aggregation: str
    calculator: MetricCalculator


class MetricRegistry:
    def __init__(self, definitions: Sequence[MetricDefinition] = ()) -> None:
        self._definitions: dict[str, MetricDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: MetricDefinition) -> MetricDefinition:
        if definition.id in self._definitions:
            raise ValueError(f"Duplicate metric definition id={definition.id!r}")
        self._definitions[definition.id] = definition
        logger.debug("Registered metric %s (%s)", definition.id, definition.category)
        return definition

    def get(self, metric_id: str) -> MetricDefinition:
        try:
            return self._definitions[metric_id]
        except KeyError:
            raise UnknownMetricError(metric_id) from None

    def ids(self) -> list[str]:
        return list(self._definitions)

    def by_category(self, category: str) -> list[MetricDefinition]:
        return [d for d in self._definitions.values() if d.category == category]

    def evaluate(self, metric_id: str, records: Sequence[WorkoutTotals]) -> float | None:
        return self.get(metric_id).calculator(records)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


def _chained(tiers) -> MetricCalculator:
    def calculate(records: Sequence[WorkoutTotals]) -> float | None:
        ctx = KpiContext(base=aggregate_totals(list(records)), precomputed=PrecomputedKpis())
        value, _source = resolve_chain(tiers, ctx)
        return value

    return calculate


def build_default_registry() -> MetricRegistry:
    return MetricRegistry(
        [
            MetricDefinition(
                "tonnage_kg", "kg", "volume", "sum/day",
                lambda records: aggregate_totals(list(records)).tonnage_kg,
            ),
            MetricDefinition(
                "sets", "sets", "volume", "sum/day",
                lambda records: aggregate_totals(list(records)).sets,
            ),
            MetricDefinition(
                "reps", "reps", "volume", "sum/day",
                lambda records: aggregate_totals(list(records)).reps,
            ),
            MetricDefinition(
                "duration_min", "min", "time", "sum/day",
                lambda records: aggregate_totals(list(records)).duration_min,
            ),
            MetricDefinition(
                "density_kg_per_min", "kg/min", "efficiency", "weighted/day",
                lambda records: aggregate_totals(list(records)).density_kg_per_min,
            ),
            MetricDefinition(
                "avg_rest_sec", "s", "rest", "weighted/day", _chained(AVG_REST_SEC_TIERS),
            ),
            MetricDefinition(
                "set_efficiency_kg_per_min", "kg/min", "efficiency", "weighted/day",
                _chained(SET_EFFICIENCY_TIERS),
            ),
        ]
    )
