"""Validation of client-supplied workout fields.

The same rules apply to create and update. Which optional fields survive is
decided by the activity category table, never by ad-hoc string checks.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from fittrack.errors import ValidationError
from fittrack.util.time import parse_iso_date

from .activities import category_for

INTENSITIES = ("low", "medium", "high")

# One week.
MAX_DURATION_MINUTES = 7 * 24 * 60


@dataclass(frozen=True)
class WorkoutFields:
    date: str
    activity: str
    duration: int
    intensity: Optional[str] = None
    notes: Optional[str] = None
    distance: Optional[float] = None
    structured_exercises: Optional[List[Any]] = None

    def exercises_blob(self) -> Optional[str]:
        if self.structured_exercises is None:
            return None
        return json.dumps(self.structured_exercises)


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _coerce_duration(v: Any) -> int:
    if isinstance(v, bool):
        raise ValidationError("duration must be a whole number of minutes")
    if isinstance(v, int):
        n = v
    elif isinstance(v, float) and v.is_integer():
        n = int(v)
    elif isinstance(v, str) and v.strip().isdecimal():
        n = int(v.strip())
    else:
        raise ValidationError("duration must be a whole number of minutes")
    if n <= 0:
        raise ValidationError("duration must be positive")
    if n > MAX_DURATION_MINUTES:
        raise ValidationError(f"duration must be at most {MAX_DURATION_MINUTES} minutes")
    return n


def _coerce_distance(v: Any) -> float:
    if isinstance(v, bool):
        raise ValidationError("distance must be a positive number")
    try:
        d = float(v)
    except (TypeError, ValueError):
        raise ValidationError("distance must be a positive number")
    if not math.isfinite(d) or d <= 0:
        raise ValidationError("distance must be a positive number")
    return d


def validate_workout_fields(raw: Mapping[str, Any]) -> WorkoutFields:
    date = raw.get("date")
    activity = raw.get("activity")
    duration = raw.get("duration")
    if _blank(date) or _blank(activity) or _blank(duration):
        raise ValidationError("date, activity and duration are required")

    if not isinstance(date, str):
        raise ValidationError("date must be a calendar date (YYYY-MM-DD)")
    try:
        parse_iso_date(date.strip())
    except ValueError:
        raise ValidationError("date must be a calendar date (YYYY-MM-DD)")

    if not isinstance(activity, str):
        raise ValidationError("activity must be text")
    activity = activity.strip()
    category = category_for(activity)

    intensity = raw.get("intensity")
    if _blank(intensity):
        intensity = None
    else:
        intensity = str(intensity).strip().lower()
        if intensity not in INTENSITIES:
            raise ValidationError("intensity must be one of low, medium, high")

    notes = raw.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be text")

    distance = None
    if category.tracks_distance and not _blank(raw.get("distance")):
        distance = _coerce_distance(raw.get("distance"))

    exercises = None
    if category.tracks_exercises and raw.get("structured_exercises") is not None:
        exercises = raw.get("structured_exercises")
        if not isinstance(exercises, list):
            raise ValidationError("structured_exercises must be a list")

    return WorkoutFields(
        date=date.strip(),
        activity=activity,
        duration=_coerce_duration(duration),
        intensity=intensity,
        notes=notes,
        distance=distance,
        structured_exercises=exercises,
    )
