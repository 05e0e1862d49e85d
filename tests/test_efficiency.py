from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import pytest

from training_metrics.config import EngineConfig
from training_metrics.efficiency import (
    EfficiencyInputs,
    efficiency_inputs_for_workout,
    rating_label,
    score_efficiency,
)
from training_metrics.rest_timing import calculate_rest_timing

T0 = datetime(2025, 1, 13, 18, 0, tzinfo=UTC)


def test_perfect_inputs_cap_every_component() -> None:
    score = score_efficiency(
        EfficiencyInputs(
            density_kg_per_min=1000,
            intensity_pct=500,
            sets_completed=10,
            sets_total=10,
            rest_variability=0,
            work_rest_ratio=math.inf,
            active_time_pct=100,
        )
    )

    assert score.total == 100
    assert score.rating == "Excellent"
    assert [component.score for component in score.breakdown] == [25, 25, 25, 25]
    assert all(component.max_score == 25 for component in score.breakdown)


def test_empty_inputs_only_score_rest_consistency() -> None:
    score = score_efficiency(EfficiencyInputs())

    assert score.volume_efficiency == 0
    assert score.progression_potential == 0
    assert score.consistency == pytest.approx(10)
    assert score.time_optimization == 0
    assert score.total == 10
    assert score.rating == "Needs Improvement"


def test_mid_range_session() -> None:
    score = score_efficiency(
        EfficiencyInputs(
            density_kg_per_min=25,
            intensity_pct=50,
            sets_completed=8,
            sets_total=10,
            rest_variability=0.25,
            work_rest_ratio=1.0,
            active_time_pct=60,
        )
    )

    assert score.volume_efficiency == pytest.approx(12.5)
    assert score.progression_potential == pytest.approx(12.5)
    assert score.consistency == pytest.approx(19.5)
    assert score.time_optimization == pytest.approx(13.75)
    assert score.total == 58
    assert score.rating == "Good"
    assert [component.component for component in score.breakdown] == [
        "Volume Efficiency",
        "Progression Potential",
        "Workout Consistency",
        "Time Optimization",
    ]
    assert score.breakdown[0].description == "25.0 kg/min vs 50 kg/min baseline"
    assert score.breakdown[3].description == "60% active time, 1.0:1 work:rest"


def test_non_finite_and_negative_inputs_are_neutralized() -> None:
    score = score_efficiency(
        EfficiencyInputs(
            density_kg_per_min=float("nan"),
            intensity_pct=-40,
            sets_completed=5,
            sets_total=0,
            rest_variability=float("inf"),
            work_rest_ratio=-3,
            active_time_pct=float("nan"),
        )
    )
    assert 0 <= score.total <= 100
    assert score.volume_efficiency == 0
    assert score.time_optimization == 0


def test_infinite_ratio_saturates_ratio_half() -> None:
    score = score_efficiency(EfficiencyInputs(work_rest_ratio=math.inf))
    assert score.time_optimization == pytest.approx(12.5)
    assert score.breakdown[3].description.endswith("inf:1 work:rest")


@pytest.mark.parametrize(
    ("total", "label"),
    [
        (100, "Excellent"),
        (80, "Excellent"),
        (79, "Very Good"),
        (65, "Very Good"),
        (64, "Good"),
        (50, "Good"),
        (49, "Fair"),
        (35, "Fair"),
        (34, "Needs Improvement"),
        (0, "Needs Improvement"),
    ],
)
def test_rating_labels(total: int, label: str) -> None:
    assert rating_label(total) == label


def test_inputs_from_one_workout() -> None:
    sets = []
    for number, offset in enumerate((0, 150, 300), start=1):
        started = T0 + timedelta(seconds=offset)
        sets.append(
            {
                "workout_id": "w1",
                "set_number": number,
                "weight": 100,
                "reps": 5,
                "completed": True,
                "started_at": started.isoformat(),
                "completed_at": (started + timedelta(seconds=30)).isoformat(),
            }
        )
    sets.append({"workout_id": "w1", "set_number": 4, "weight": 100, "reps": 5, "completed": False})
    sets.append({"workout_id": "other", "set_number": 1, "weight": 500, "reps": 5, "completed": True})

    inputs = efficiency_inputs_for_workout(
        {"id": "w1", "started_at": T0.isoformat(), "duration_seconds": 1800},
        sets,
        EngineConfig(),
    )

    assert inputs.density_kg_per_min == 50
    assert inputs.sets_completed == 3
    assert inputs.sets_total == 4
    assert inputs.intensity_pct == pytest.approx(375 / 70 * 100)
    assert inputs.rest_variability == 0
    assert inputs.work_rest_ratio == pytest.approx(6.5)
    assert inputs.active_time_pct == pytest.approx(1560 / 1800 * 100)

    assert score_efficiency(inputs).total <= 100


def test_rest_variability_matches_rest_timing_statistics() -> None:
    sets = []
    for number, offset in enumerate((0, 90, 240, 420), start=1):
        started = T0 + timedelta(seconds=offset)
        sets.append(
            {
                "workout_id": "w1",
                "set_number": number,
                "weight": 100,
                "reps": 5,
                "completed": True,
                "started_at": started.isoformat(),
                "completed_at": (started + timedelta(seconds=30)).isoformat(),
            }
        )

    inputs = efficiency_inputs_for_workout({"id": "w1", "duration_seconds": 1800}, sets)

    expected = calculate_rest_timing(sets).variability_pct / 100
    assert inputs.rest_variability == pytest.approx(expected)
    assert inputs.rest_variability == pytest.approx(0.34015, abs=1e-4)
