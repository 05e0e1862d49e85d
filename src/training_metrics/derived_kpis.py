"""Secondary KPIs resolved through ordered source tiers.

Each chained KPI is a tuple of ``Tier`` entries evaluated first-match-wins.
Adding a data source is one new ``Tier`` in the right position.

Tier labels:
    v2                precomputed upstream value (positive numbers only)
    rest_min_per_set  rest_min * 60 / sets (rest_min == 0 is a measured value)
    active_min        tonnage_kg / active_min
    density_fallback  density_kg_per_min as-is
    none              no source; value omitted (avg rest) or 0 (efficiency)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .base_totals import BaseTotals
from .config import EngineConfig
from .logging import metrics_extra
from .numeric import round2, safe_div

logger = logging.getLogger(__name__)

TIER_LABELS: tuple[str, ...] = (
    "v2",
    "rest_min_per_set",
    "active_min",
    "density_fallback",
    "none",
)


class PrecomputedKpis(BaseModel):
    """KPI values supplied by the upstream metrics service.

    Anything that is not a finite number is dropped to ``None`` so the next
    tier takes over instead of the whole payload being rejected.
    """

    model_config = ConfigDict(extra="ignore")

    avg_rest_sec: float | None = None
    set_efficiency_kg_per_min: float | None = None

    @field_validator("avg_rest_sec", "set_efficiency_kg_per_min", mode="before")
    @classmethod
    def drop_malformed(cls, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            parsed = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return parsed if math.isfinite(parsed) else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | PrecomputedKpis | None) -> PrecomputedKpis:
        if payload is None:
            return cls()
        if isinstance(payload, cls):
            return payload
        if not isinstance(payload, Mapping):
            raise TypeError(f"precomputed KPIs must be a mapping, got {type(payload).__name__}")
        # Upstream services nest KPI values under "kpis" next to "totals".
        source = payload.get("kpis") if isinstance(payload.get("kpis"), Mapping) else payload
        return cls.model_validate(
            {
                "avg_rest_sec": source.get("avg_rest_sec", source.get("avgRestSec")),
                "set_efficiency_kg_per_min": source.get(
                    "set_efficiency_kg_per_min", source.get("setEfficiencyKgPerMin")
                ),
            }
        )


@dataclass(frozen=True)
class KpiContext:
    base: BaseTotals
    precomputed: PrecomputedKpis


@dataclass(frozen=True)
class Tier:
    name: str
    predicate: Callable[[KpiContext], bool]
    compute: Callable[[KpiContext], float | None]


def _positive(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


AVG_REST_SEC_TIERS: tuple[Tier, ...] = (
    Tier(
        "v2",
        lambda ctx: _positive(ctx.precomputed.avg_rest_sec),
        lambda ctx: ctx.precomputed.avg_rest_sec,
    ),
    Tier(
        "rest_min_per_set",
        lambda ctx: ctx.base.rest_min is not None and ctx.base.sets > 0,
        lambda ctx: ctx.base.rest_min * 60 / ctx.base.sets,
    ),
    Tier("none", lambda ctx: True, lambda ctx: None),
)

SET_EFFICIENCY_TIERS: tuple[Tier, ...] = (
    Tier(
        "v2",
        lambda ctx: _positive(ctx.precomputed.set_efficiency_kg_per_min),
        lambda ctx: ctx.precomputed.set_efficiency_kg_per_min,
    ),
    Tier(
        "active_min",
        lambda ctx: _positive(ctx.base.active_min),
        lambda ctx: safe_div(ctx.base.tonnage_kg, ctx.base.active_min),
    ),
    Tier(
        "density_fallback",
        lambda ctx: _positive(ctx.base.density_kg_per_min),
        lambda ctx: ctx.base.density_kg_per_min,
    ),
    Tier("none", lambda ctx: True, lambda ctx: 0.0),
)


def resolve_chain(tiers: tuple[Tier, ...], ctx: KpiContext) -> tuple[float | None, str]:
    for tier in tiers:
        if tier.predicate(ctx):
            value = tier.compute(ctx)
            return (round2(value) if value is not None else None), tier.name
    return None, "none"


@dataclass(frozen=True)
class DerivedTotals:
    avg_reps_per_set: float | None = None
    avg_tonnage_per_set_kg: float | None = None
    avg_tonnage_per_rep_kg: float | None = None
    avg_duration_per_set_min: float | None = None
    avg_rest_sec: float | None = None
    set_efficiency_kg_per_min: float | None = None

    def as_dict(self) -> dict[str, float]:
        return {
            field.name: getattr(self, field.name)
            for field in fields(self)
            if getattr(self, field.name) is not None
        }


@dataclass(frozen=True)
class KpiResolution:
    derived: DerivedTotals
    diagnostics: dict[str, str] | None = None


def resolve_derived_totals(
    base: BaseTotals,
    precomputed: Mapping[str, Any] | PrecomputedKpis | None = None,
    config: EngineConfig | None = None,
) -> KpiResolution:
    config = config or EngineConfig()
    if not config.derived_kpis_enabled:
        return KpiResolution(
            derived=DerivedTotals(),
            diagnostics={} if config.kpi_diagnostics_enabled else None,
        )

    ctx = KpiContext(base=base, precomputed=PrecomputedKpis.from_payload(precomputed))
    avg_rest_sec, rest_source = resolve_chain(AVG_REST_SEC_TIERS, ctx)
    set_efficiency, efficiency_source = resolve_chain(SET_EFFICIENCY_TIERS, ctx)

    derived = DerivedTotals(
        avg_reps_per_set=round2(safe_div(base.reps, base.sets)),
        avg_tonnage_per_set_kg=round2(safe_div(base.tonnage_kg, base.sets)),
        avg_tonnage_per_rep_kg=round2(safe_div(base.tonnage_kg, base.reps)),
        avg_duration_per_set_min=round2(safe_div(base.duration_min, base.sets)),
        avg_rest_sec=avg_rest_sec,
        set_efficiency_kg_per_min=set_efficiency,
    )

    if not config.kpi_diagnostics_enabled:
        return KpiResolution(derived=derived)

    diagnostics = {
        "avg_rest_sec": rest_source,
        "set_efficiency_kg_per_min": efficiency_source,
    }
    for kpi, value in derived.as_dict().items():
        logger.debug(
            "derived kpi resolved",
            extra=metrics_extra(kpi=kpi, value=value, source=diagnostics.get(kpi, "computed")),
        )
    return KpiResolution(derived=derived, diagnostics=diagnostics)
