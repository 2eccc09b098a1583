"""Authentication / authorization helpers.

Auth is deliberately lightweight:

- Users table (username/password hash + role)
- Stateless JWT access tokens, `Authorization: Bearer <token>` only

There is no server-side session or revocation list. A token stays valid, with
the role it was issued with, until it expires.
"""

from .crud import bootstrap_admin_if_needed, create_user, register, set_role
from .deps import get_current_claims, require_admin
from .security import TokenIssuer, hash_password, verify_password

__all__ = [
    "get_current_claims",
    "require_admin",
    "bootstrap_admin_if_needed",
    "create_user",
    "register",
    "set_role",
    "TokenIssuer",
    "hash_password",
    "verify_password",
]
