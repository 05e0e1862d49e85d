"""Row loaders for the host application.

The engine never fetches data itself; these helpers read workout and set rows
scoped to one user so callers can hand them to ``MetricsEngine.compute``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import psycopg
from psycopg.rows import dict_row

logger = logging.getLogger(__name__)


async def fetch_workouts(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    start: datetime,
    end: datetime,
) -> list[dict[str, Any]]:
    """Workouts whose start time falls in [start, end], oldest first.

    ``workout_sessions.duration`` is stored in minutes.
    """
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            SELECT id, start_time AS started_at, end_time AS ended_at, duration AS duration_min
            FROM workout_sessions
            WHERE user_id = %s
              AND start_time >= %s
              AND start_time <= %s
            ORDER BY start_time ASC
            """,
            (user_id, start, end),
        )
        rows = await cur.fetchall()
    return [dict(row) for row in rows]


async def fetch_sets(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    workout_ids: Sequence[str],
) -> list[dict[str, Any]]:
    """Set rows of the given workouts, restricted to workouts owned by ``user_id``.

    The bodyweight flag lives on the exercise catalog, not on the set.
    """
    if not workout_ids:
        return []
    async with conn.cursor(row_factory=dict_row) as cur:
        await cur.execute(
            """
            SELECT s.id, s.workout_id, s.exercise_name, s.set_number,
                   s.weight, s.reps, s.completed,
                   s.started_at, s.completed_at, s.rest_time,
                   s.is_warmup, COALESCE(e.is_bodyweight, false) AS is_bodyweight
            FROM exercise_sets s
            JOIN workout_sessions w ON w.id = s.workout_id
            LEFT JOIN exercises e ON e.id = s.exercise_id
            WHERE w.user_id = %s
              AND s.workout_id = ANY(%s)
            ORDER BY s.workout_id, s.set_number ASC
            """,
            (user_id, list(workout_ids)),
        )
        rows = await cur.fetchall()
    logger.debug("Loaded %d set rows for %d workouts", len(rows), len(workout_ids))
    return [dict(row) for row in rows]


async def load_training_rows(
    conn: psycopg.AsyncConnection[Any],
    user_id: str,
    start: datetime,
    end: datetime,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    workouts = await fetch_workouts(conn, user_id, start, end)
    sets = await fetch_sets(conn, user_id, [str(row["id"]) for row in workouts])
    return workouts, sets
