"""FitTrack - personal workout log (backend).

Core concepts:
- Users register with a username/password and log in for a short-lived JWT.
- Every workout has exactly one owner; regular users only ever see and change
  their own rows.
- Admins manage roles and can list/delete any workout (but not edit it).
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
