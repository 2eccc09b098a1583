from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class ActivityCategory:
    key: str
    tracks_distance: bool = False
    tracks_exercises: bool = False


OTHER = ActivityCategory("other")

_CATEGORIES: Dict[str, ActivityCategory] = {
    c.key: c
    for c in (
        ActivityCategory("running", tracks_distance=True),
        ActivityCategory("swimming", tracks_distance=True),
        ActivityCategory("cycling", tracks_distance=True),
        ActivityCategory("hiking", tracks_distance=True),
        ActivityCategory("walking", tracks_distance=True),
        ActivityCategory("gym", tracks_exercises=True),
        ActivityCategory("yoga"),
        ActivityCategory("pilates"),
        ActivityCategory("dancing"),
        ActivityCategory("martial arts"),
    )
}


def category_for(activity: str | None) -> ActivityCategory:
    """Look up the category of a free-text activity label (case-insensitive).

    Unknown labels fall into OTHER, which tracks neither distance nor exercises.
    """
    key = " ".join((activity or "").split()).lower()
    return _CATEGORIES.get(key, OTHER)


def known_categories() -> list[ActivityCategory]:
    return list(_CATEGORIES.values())
