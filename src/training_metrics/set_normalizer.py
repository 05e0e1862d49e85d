"""Normalize raw exercise-set rows into one internal shape.

Rows arrive from several historical schemas (camelCase client payloads,
snake_case database rows, legacy ``rest_time`` fields). Every accessor here
is lenient: malformed values become ``None`` or ``0`` and never raise.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

DEFAULT_BODYWEIGHT_KG = 70.0

TIMING_SOURCES: tuple[str, ...] = ("actual", "estimated", "manual")

_WEIGHT_KEYS = ("weight_kg", "weightKg", "weight")
_REST_SECONDS_KEYS = ("rest_seconds", "restSeconds", "rest_time", "restTime", "rest_time_sec")
_REST_MS_KEYS = ("rest_ms", "restMs")


def to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def to_int(value: Any) -> int | None:
    parsed = to_float(value)
    if parsed is None:
        return None
    return int(round(parsed))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse datetimes, ISO strings and epoch milliseconds; junk → None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            if not math.isfinite(value):
                return None
            return datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def first_present(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _flag(value: Any) -> bool:
    return value is True


def resolve_bodyweight(bodyweight_kg: Any) -> float:
    parsed = to_float(bodyweight_kg)
    if parsed is None or parsed <= 0:
        return DEFAULT_BODYWEIGHT_KG
    return parsed


@dataclass(frozen=True)
class NormalizedSet:
    set_id: str
    workout_id: str
    exercise_name: str
    set_number: int
    weight_kg: float
    reps: int
    completed: bool
    is_warmup: bool
    is_bodyweight: bool
    started_at: datetime | None
    completed_at: datetime | None
    rest_seconds: float | None
    timing_source: str
    effective_weight_kg: float

    @property
    def tonnage_kg(self) -> float:
        return self.effective_weight_kg * self.reps

    @property
    def contributes(self) -> bool:
        """True when the set counts toward tonnage, reps and rest."""
        return self.completed and not self.is_warmup and self.reps > 0

    @property
    def has_actual_timing(self) -> bool:
        return self.started_at is not None and self.completed_at is not None

    @property
    def duration_ms(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds() * 1000.0


def effective_weight(weight_kg: float, *, is_bodyweight: bool, bodyweight_kg: float) -> float:
    if weight_kg > 0:
        return weight_kg
    if is_bodyweight:
        return bodyweight_kg
    return 0.0


def _legacy_rest_seconds(row: Mapping[str, Any]) -> float | None:
    seconds = to_float(first_present(row, *_REST_SECONDS_KEYS))
    if seconds is None:
        rest_ms = to_float(first_present(row, *_REST_MS_KEYS))
        if rest_ms is not None:
            seconds = rest_ms / 1000.0
    if seconds is None or seconds < 0:
        return None
    return seconds


def _timing_source(row: Mapping[str, Any], *, has_actual_timing: bool) -> str:
    declared = str(first_present(row, "timing_source", "timingSource") or "").strip().lower()
    if declared in TIMING_SOURCES:
        return declared
    return "actual" if has_actual_timing else "estimated"


def normalize_set(
    row: Mapping[str, Any],
    *,
    bodyweight_kg: float = DEFAULT_BODYWEIGHT_KG,
    position: int = 0,
) -> NormalizedSet:
    """Normalize one raw set row.

    ``position`` is the row's index in its input collection and is used as the
    set number when the row carries none.
    """
    if not isinstance(row, Mapping):
        raise TypeError(f"set rows must be mappings, got {type(row).__name__}")

    weight = to_float(first_present(row, *_WEIGHT_KEYS))
    weight_kg = weight if weight is not None and weight > 0 else 0.0
    reps_value = to_int(row.get("reps"))
    reps = reps_value if reps_value is not None and reps_value > 0 else 0
    is_bodyweight = _flag(first_present(row, "is_bodyweight", "isBodyweight"))

    started_at = parse_timestamp(first_present(row, "started_at", "startedAt"))
    completed_at = parse_timestamp(
        first_present(row, "completed_at", "completedAt", "performed_at", "performedAt")
    )
    set_number = to_int(first_present(row, "set_number", "setNumber"))

    return NormalizedSet(
        set_id=str(row.get("id") or ""),
        workout_id=str(first_present(row, "workout_id", "workoutId") or ""),
        exercise_name=str(first_present(row, "exercise_name", "exerciseName") or "").strip(),
        set_number=set_number if set_number is not None else position + 1,
        weight_kg=weight_kg,
        reps=reps,
        completed=_flag(row.get("completed")),
        is_warmup=_flag(first_present(row, "is_warmup", "isWarmup")),
        is_bodyweight=is_bodyweight,
        started_at=started_at,
        completed_at=completed_at,
        rest_seconds=_legacy_rest_seconds(row),
        timing_source=_timing_source(
            row, has_actual_timing=started_at is not None and completed_at is not None
        ),
        effective_weight_kg=effective_weight(
            weight_kg,
            is_bodyweight=is_bodyweight,
            bodyweight_kg=resolve_bodyweight(bodyweight_kg),
        ),
    )


def ensure_rows(rows: Any, *, name: str) -> Sequence[Any]:
    """Reject non-sequence inputs; they signal an integration bug upstream."""
    if isinstance(rows, (str, bytes)) or not isinstance(rows, Sequence):
        raise TypeError(f"{name} must be a list of rows, got {type(rows).__name__}")
    return rows


def normalize_sets(
    rows: Sequence[Mapping[str, Any]],
    *,
    bodyweight_kg: float = DEFAULT_BODYWEIGHT_KG,
) -> list[NormalizedSet]:
    ensure_rows(rows, name="sets")
    return [
        row if isinstance(row, NormalizedSet) else normalize_set(
            row, bodyweight_kg=bodyweight_kg, position=index
        )
        for index, row in enumerate(rows)
    ]


@dataclass(frozen=True)
class NormalizedWorkout:
    workout_id: str
    started_at: datetime | None
    duration_seconds: float

    @property
    def duration_min(self) -> float:
        return self.duration_seconds / 60.0

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000.0


def _workout_duration_seconds(row: Mapping[str, Any], started_at: datetime | None) -> float:
    seconds = to_float(first_present(row, "duration_seconds", "durationSeconds"))
    if seconds is None:
        minutes = to_float(first_present(row, "duration_min", "durationMin", "duration"))
        if minutes is not None:
            seconds = minutes * 60.0
    if seconds is None and started_at is not None:
        ended_at = parse_timestamp(first_present(row, "ended_at", "endedAt", "end_time"))
        if ended_at is not None:
            seconds = (ended_at - started_at).total_seconds()
    if seconds is None or seconds < 0:
        return 0.0
    return seconds


def normalize_workout(row: Mapping[str, Any]) -> NormalizedWorkout:
    if not isinstance(row, Mapping):
        raise TypeError(f"workout rows must be mappings, got {type(row).__name__}")
    started_at = parse_timestamp(first_present(row, "started_at", "startedAt", "start_time"))
    return NormalizedWorkout(
        workout_id=str(row.get("id") or ""),
        started_at=started_at,
        duration_seconds=_workout_duration_seconds(row, started_at),
    )


def normalize_workouts(rows: Sequence[Mapping[str, Any]]) -> list[NormalizedWorkout]:
    ensure_rows(rows, name="workouts")
    return [row if isinstance(row, NormalizedWorkout) else normalize_workout(row) for row in rows]
