"""Error taxonomy shared by the store, the repositories and the API.

Each error knows its HTTP status and the message shown to clients; the API
renders every one of them as ``{"error": message}``.
"""

from __future__ import annotations


class FitTrackError(Exception):
    status_code = 500
    default_message = "internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FitTrackError):
    status_code = 400
    default_message = "invalid request"


class Conflict(FitTrackError):
    status_code = 409
    default_message = "conflict"


class Unauthorized(FitTrackError):
    status_code = 401
    default_message = "unauthorized"


class AuthError(Unauthorized):
    """A bearer token could not be accepted."""

    MISSING = "missing"
    MALFORMED = "malformed"
    EXPIRED = "expired"
    BAD_SIGNATURE = "bad_signature"

    _MESSAGES = {
        MISSING: "missing or invalid authorization header",
        MALFORMED: "malformed token",
        EXPIRED: "token expired",
        BAD_SIGNATURE: "invalid token signature",
    }

    def __init__(self, reason: str):
        if reason not in self._MESSAGES:
            raise ValueError(f"unknown auth error reason: {reason}")
        self.reason = reason
        super().__init__(self._MESSAGES[reason])


class Forbidden(FitTrackError):
    status_code = 403
    default_message = "admin access required"


class NotFound(FitTrackError):
    status_code = 404
    default_message = "not found"


class StorageError(FitTrackError):
    status_code = 500
    default_message = "database error"
