from __future__ import annotations

import pytest

from training_metrics.base_totals import BaseTotals, aggregate_totals
from training_metrics.config import EngineConfig
from training_metrics.derived_kpis import (
    AVG_REST_SEC_TIERS,
    SET_EFFICIENCY_TIERS,
    TIER_LABELS,
    DerivedTotals,
    PrecomputedKpis,
    resolve_derived_totals,
)

DIAGNOSTICS = EngineConfig(kpi_diagnostics_enabled=True)


def _base(**overrides) -> BaseTotals:
    values = {
        "sets": 20,
        "reps": 200,
        "duration_min": 60.0,
        "tonnage_kg": 2000.0,
        "density_kg_per_min": 33.33,
        "rest_min": 15.0,
        "active_min": 45.0,
    }
    values.update(overrides)
    return BaseTotals(**values)


def test_chains_only_use_known_tier_labels() -> None:
    for tiers in (AVG_REST_SEC_TIERS, SET_EFFICIENCY_TIERS):
        assert {tier.name for tier in tiers} <= set(TIER_LABELS)
        assert tiers[-1].name == "none"


def test_simple_averages() -> None:
    derived = resolve_derived_totals(_base()).derived

    assert derived.avg_reps_per_set == 10
    assert derived.avg_tonnage_per_set_kg == 100
    assert derived.avg_tonnage_per_rep_kg == 10
    assert derived.avg_duration_per_set_min == 3


def test_reference_session_resolves_rest_from_rest_minutes() -> None:
    base = aggregate_totals(
        [{"sets": 187, "reps": 1500, "duration_min": 716, "tonnage_kg": 15000, "rest_min": 13}]
    )
    resolution = resolve_derived_totals(base, config=DIAGNOSTICS)

    assert resolution.derived.avg_rest_sec == 4.17
    assert resolution.diagnostics == {
        "avg_rest_sec": "rest_min_per_set",
        "set_efficiency_kg_per_min": "density_fallback",
    }
    assert resolution.derived.set_efficiency_kg_per_min == 20.95


def test_precomputed_values_win() -> None:
    resolution = resolve_derived_totals(
        _base(),
        {"avg_rest_sec": 120, "set_efficiency_kg_per_min": 44.444},
        DIAGNOSTICS,
    )

    assert resolution.derived.avg_rest_sec == 120
    assert resolution.derived.set_efficiency_kg_per_min == 44.44
    assert resolution.diagnostics == {"avg_rest_sec": "v2", "set_efficiency_kg_per_min": "v2"}


def test_precomputed_payload_nested_under_kpis_with_camel_case_keys() -> None:
    resolution = resolve_derived_totals(
        _base(), {"totals": {}, "kpis": {"avgRestSec": 75, "setEfficiencyKgPerMin": 30}}
    )
    assert resolution.derived.avg_rest_sec == 75
    assert resolution.derived.set_efficiency_kg_per_min == 30


def test_base_tiers_when_no_precomputed_values() -> None:
    base = _base(sets=10, tonnage_kg=1500.0, rest_min=10.0, active_min=30.0)
    resolution = resolve_derived_totals(base, config=DIAGNOSTICS)

    assert resolution.derived.avg_rest_sec == 60
    assert resolution.derived.set_efficiency_kg_per_min == 50
    assert resolution.diagnostics == {
        "avg_rest_sec": "rest_min_per_set",
        "set_efficiency_kg_per_min": "active_min",
    }


def test_efficiency_falls_back_to_density_without_active_minutes() -> None:
    base = _base(active_min=None, density_kg_per_min=25.0)
    resolution = resolve_derived_totals(base, {"avg_rest_sec": 90}, DIAGNOSTICS)

    assert resolution.derived.avg_rest_sec == 90
    assert resolution.derived.set_efficiency_kg_per_min == 25
    assert resolution.diagnostics == {
        "avg_rest_sec": "v2",
        "set_efficiency_kg_per_min": "density_fallback",
    }


def test_zero_rest_minutes_is_a_measured_value() -> None:
    resolution = resolve_derived_totals(_base(rest_min=0.0), config=DIAGNOSTICS)

    assert resolution.derived.avg_rest_sec == 0.0
    assert resolution.diagnostics["avg_rest_sec"] == "rest_min_per_set"


def test_missing_rest_or_sets_leaves_avg_rest_undefined() -> None:
    for base in (_base(rest_min=None), _base(sets=0)):
        resolution = resolve_derived_totals(base, config=DIAGNOSTICS)
        assert resolution.derived.avg_rest_sec is None
        assert "avg_rest_sec" not in resolution.derived.as_dict()
        assert resolution.diagnostics["avg_rest_sec"] == "none"


def test_empty_input_yields_zero_averages() -> None:
    resolution = resolve_derived_totals(aggregate_totals([]), config=DIAGNOSTICS)

    assert resolution.derived.avg_reps_per_set == 0
    assert resolution.derived.avg_tonnage_per_set_kg == 0
    assert resolution.derived.avg_tonnage_per_rep_kg == 0
    assert resolution.derived.avg_duration_per_set_min == 0
    assert resolution.derived.avg_rest_sec is None
    assert resolution.derived.set_efficiency_kg_per_min == 0
    assert resolution.diagnostics == {"avg_rest_sec": "none", "set_efficiency_kg_per_min": "none"}


@pytest.mark.parametrize(
    "bad_value", [0, -5, "fast", None, True, float("nan"), float("inf"), 10**400]
)
def test_non_positive_or_malformed_precomputed_values_fall_through(bad_value) -> None:
    resolution = resolve_derived_totals(
        _base(),
        {"avg_rest_sec": bad_value, "set_efficiency_kg_per_min": bad_value},
        DIAGNOSTICS,
    )
    assert resolution.diagnostics == {
        "avg_rest_sec": "rest_min_per_set",
        "set_efficiency_kg_per_min": "active_min",
    }
    assert resolution.derived.avg_rest_sec == 45
    assert resolution.derived.set_efficiency_kg_per_min == 44.44


def test_precomputed_model_drops_malformed_fields_and_ignores_extras() -> None:
    kpis = PrecomputedKpis.model_validate({"avg_rest_sec": "90", "unexpected": 1})
    assert kpis.avg_rest_sec == 90
    assert kpis.set_efficiency_kg_per_min is None

    assert PrecomputedKpis.from_payload(None) == PrecomputedKpis()
    assert PrecomputedKpis.from_payload(kpis) is kpis
    with pytest.raises(TypeError):
        PrecomputedKpis.from_payload([("avg_rest_sec", 90)])  # type: ignore[arg-type]


def test_disabled_flag_returns_only_base_totals() -> None:
    disabled = resolve_derived_totals(_base(), config=EngineConfig(derived_kpis_enabled=False))
    assert disabled.derived == DerivedTotals()
    assert disabled.derived.as_dict() == {}
    assert disabled.diagnostics is None

    with_diagnostics = resolve_derived_totals(
        _base(),
        config=EngineConfig(derived_kpis_enabled=False, kpi_diagnostics_enabled=True),
    )
    assert with_diagnostics.diagnostics == {}


def test_diagnostics_absent_unless_enabled() -> None:
    assert resolve_derived_totals(_base()).diagnostics is None


def test_values_are_rounded_to_two_decimals() -> None:
    derived = resolve_derived_totals(_base(sets=3, reps=10, tonnage_kg=1000.0, rest_min=1.0)).derived

    assert derived.avg_reps_per_set == 3.33
    assert derived.avg_tonnage_per_set_kg == 333.33
    assert derived.avg_rest_sec == 20
