from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from fittrack.errors import AuthError
from fittrack.models import ROLES, Claims


# Fixed work factor; passlib's verify() compares digests in constant time.
_pwd = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=29000,
)
_JWT_ALG = "HS256"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized or corrupt digest.
        return False


def create_access_token(
    *,
    secret: str,
    user_id: int,
    username: str,
    role: str,
    expires_minutes: int,
    now: datetime | None = None,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = now or datetime.now(timezone.utc)
    exp = now + timedelta(minutes=max(1, int(expires_minutes)))

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(
        token,
        secret,
        algorithms=[_JWT_ALG],
        options={"require": ["sub", "exp"]},
    )


class TokenIssuer:
    """Signs and verifies session tokens with one process-wide secret.

    Built once when the app starts; the secret cannot be changed afterwards.
    """

    __slots__ = ("_secret", "_expires_minutes")

    def __init__(self, *, secret: str, expires_minutes: int):
        if not secret:
            raise ValueError("jwt_secret_blank")
        self._secret = secret
        self._expires_minutes = max(1, int(expires_minutes))

    @property
    def expires_minutes(self) -> int:
        return self._expires_minutes

    def issue(self, *, user_id: int, username: str, role: str, now: datetime | None = None) -> str:
        return create_access_token(
            secret=self._secret,
            user_id=user_id,
            username=username,
            role=role,
            expires_minutes=self._expires_minutes,
            now=now,
        )

    def issue_for(self, user: Any) -> str:
        """Issue a token for a users row (or its public dict)."""
        d = dict(user)
        return self.issue(
            user_id=int(d.get("user_id", d.get("id"))),
            username=str(d["username"]),
            role=str(d["role"]),
        )

    def verify(self, token: str | None) -> Claims:
        if not token:
            raise AuthError(AuthError.MISSING)

        try:
            payload = decode_access_token(token=token, secret=self._secret)
        except jwt.ExpiredSignatureError:
            raise AuthError(AuthError.EXPIRED)
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError):
            raise AuthError(AuthError.BAD_SIGNATURE)
        except jwt.InvalidTokenError:
            raise AuthError(AuthError.MALFORMED)

        try:
            user_id = int(payload["sub"])
            exp = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError):
            raise AuthError(AuthError.MALFORMED)

        username = payload.get("username")
        role = payload.get("role")
        if not isinstance(username, str) or not username or role not in ROLES:
            raise AuthError(AuthError.MALFORMED)

        return Claims(user_id=user_id, username=username, role=role, expires_at=exp)
