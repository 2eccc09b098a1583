from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from fittrack.config import Config
from fittrack.db import connect
from fittrack.errors import Conflict, NotFound, ValidationError
from fittrack.models import ROLE_ADMIN, ROLE_USER, ROLES
from fittrack.util.time import utcnow_iso

from .security import hash_password, verify_password


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_username(username: str | None) -> str:
    # Usernames are case-sensitive; only surrounding whitespace is dropped.
    return (username or "").strip()


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    d["id"] = d.pop("user_id")
    return d


def get_user_by_username(conn: Any, username: str) -> Optional[Any]:
    u = normalize_username(username)
    if not u:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE username=?",
        (u,),
    ).fetchone()


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()


def verify_user_credentials(conn: Any, username: str, password: str) -> Optional[Any]:
    """Return the user row when the password matches, else None.

    Unknown usernames and wrong passwords are indistinguishable to the caller.
    """
    row = get_user_by_username(conn, username)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    username: str,
    password: str,
    role: str = ROLE_USER,
) -> Dict[str, Any]:
    u = normalize_username(username)
    if not u or not password:
        raise ValidationError("username and password are required")
    if role not in ROLES:
        raise ValidationError("role must be 'user' or 'admin'")

    existing = conn.execute("SELECT 1 FROM users WHERE username=?", (u,)).fetchone()
    if existing is not None:
        raise Conflict("username already taken")

    now = utcnow_iso()
    try:
        row = conn.execute(
            """
            INSERT INTO users (username, password_hash, role, created_at, updated_at)
            VALUES (?,?,?,?,?)
            RETURNING *
            """,
            (u, hash_password(password), role, now, now),
        ).fetchone()
    except sqlite3.IntegrityError:
        # Lost a race against a concurrent registration of the same name.
        raise Conflict("username already taken")

    _debug(f"created user user_id={row['user_id']} role={role}")
    return public_user(row)


def register(conn: Any, *, username: str, password: str) -> int:
    """Self-service registration. New accounts always get the `user` role."""
    u = create_user(conn, username=username, password=password, role=ROLE_USER)
    return int(u["id"])


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def list_users(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT user_id AS id, username, role FROM users ORDER BY user_id ASC"
    ).fetchall()
    return [dict(r) for r in rows]


def set_role(conn: Any, *, target_user_id: int, new_role: str) -> None:
    """Change another user's role.

    Tokens already issued to the target keep their embedded role until they
    expire; only tokens issued after this call carry the new role.
    """
    if new_role not in ROLES:
        raise ValidationError("role must be 'user' or 'admin'")

    cur = conn.execute(
        "UPDATE users SET role=?, updated_at=? WHERE user_id=?",
        (new_role, utcnow_iso(), int(target_user_id)),
    )
    if cur.rowcount == 0:
        raise NotFound("user not found")
    _debug(f"role changed user_id={target_user_id} role={new_role}")


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    Controlled via environment variables so a fresh install has a deterministic
    way to reach the admin endpoints:

    - AUTH_BOOTSTRAP_ADMIN_USERNAME (default: admin)
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD (no default; nothing is created when unset)

    This only runs when there are 0 rows in `users`.
    """

    username = normalize_username(cfg.AUTH_BOOTSTRAP_ADMIN_USERNAME)
    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD
    if not username or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None

        return create_user(conn, username=username, password=password, role=ROLE_ADMIN)
