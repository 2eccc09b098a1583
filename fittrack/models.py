from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


@dataclass(frozen=True)
class Claims:
    """Decoded session token payload."""

    user_id: int
    username: str
    role: str
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "username": self.username,
            "role": self.role,
            "is_admin": self.is_admin,
            "expires_at": self.expires_at.isoformat().replace("+00:00", "Z"),
        }
