"""Workout repository.

Every read and write that a regular user can reach takes the caller's user id
and puts it in the WHERE clause. The admin_* functions skip that predicate and
must only be reached through the admin role gate.
"""

from .activities import ActivityCategory, category_for
from .crud import (
    admin_delete_workout,
    admin_list_all,
    create_workout,
    delete_workout,
    list_for_owner,
    update_workout,
)
from .fields import WorkoutFields, validate_workout_fields

__all__ = [
    "ActivityCategory",
    "category_for",
    "WorkoutFields",
    "validate_workout_fields",
    "create_workout",
    "list_for_owner",
    "update_workout",
    "delete_workout",
    "admin_delete_workout",
    "admin_list_all",
]
