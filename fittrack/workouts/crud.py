from __future__ import annotations

import json
from typing import Any, Dict, List

from fittrack.errors import NotFound
from fittrack.util.time import utcnow_iso

from .fields import WorkoutFields


def _debug(msg: str) -> None:
    print(f"[workouts] {msg}")


_WORKOUT_COLS = """
    w.workout_id AS id,
    w.date,
    w.activity,
    w.duration,
    w.intensity,
    w.notes,
    w.distance,
    w.structured_exercises,
    w.owner_id,
    w.created_at,
    w.updated_at
"""


def public_workout(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    blob = d.get("structured_exercises")
    if blob is not None:
        try:
            d["structured_exercises"] = json.loads(blob)
        except ValueError:
            # Legacy rows may hold free text; hand it back untouched.
            pass
    return d


def create_workout(conn: Any, *, owner_id: int, fields: WorkoutFields) -> int:
    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO workouts
            (date, activity, duration, intensity, notes, distance, structured_exercises,
             owner_id, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?)
        RETURNING workout_id
        """,
        (
            fields.date,
            fields.activity,
            fields.duration,
            fields.intensity,
            fields.notes,
            fields.distance,
            fields.exercises_blob(),
            int(owner_id),
            now,
            now,
        ),
    ).fetchone()
    workout_id = int(row["workout_id"])
    _debug(f"created workout_id={workout_id} owner_id={owner_id}")
    return workout_id


def list_for_owner(conn: Any, *, owner_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {_WORKOUT_COLS}
        FROM workouts w
        WHERE w.owner_id=?
        ORDER BY w.date DESC, w.workout_id DESC
        """,
        (int(owner_id),),
    ).fetchall()
    return [public_workout(r) for r in rows]


def update_workout(conn: Any, *, workout_id: int, owner_id: int, fields: WorkoutFields) -> None:
    """Overwrite a workout the caller owns.

    A row owned by someone else is reported exactly like a missing row.
    """
    cur = conn.execute(
        """
        UPDATE workouts
        SET date=?, activity=?, duration=?, intensity=?, notes=?, distance=?,
            structured_exercises=?, updated_at=?
        WHERE workout_id=? AND owner_id=?
        """,
        (
            fields.date,
            fields.activity,
            fields.duration,
            fields.intensity,
            fields.notes,
            fields.distance,
            fields.exercises_blob(),
            utcnow_iso(),
            int(workout_id),
            int(owner_id),
        ),
    )
    if cur.rowcount == 0:
        raise NotFound("workout not found")


def delete_workout(conn: Any, *, workout_id: int, owner_id: int) -> None:
    cur = conn.execute(
        "DELETE FROM workouts WHERE workout_id=? AND owner_id=?",
        (int(workout_id), int(owner_id)),
    )
    if cur.rowcount == 0:
        raise NotFound("workout not found")


def admin_delete_workout(conn: Any, *, workout_id: int) -> None:
    """Delete any workout regardless of owner. Callers must be admins."""
    cur = conn.execute("DELETE FROM workouts WHERE workout_id=?", (int(workout_id),))
    if cur.rowcount == 0:
        raise NotFound("workout not found")
    _debug(f"admin deleted workout_id={workout_id}")


def admin_list_all(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {_WORKOUT_COLS}, u.username
        FROM workouts w
        JOIN users u ON u.user_id = w.owner_id
        ORDER BY w.date DESC, w.workout_id DESC
        """
    ).fetchall()
    return [public_workout(r) for r in rows]
