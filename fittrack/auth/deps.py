from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fittrack.config import Config
from fittrack.errors import AuthError, FitTrackError, Forbidden
from fittrack.models import Claims

from .security import TokenIssuer


_bearer = HTTPBearer(auto_error=False)


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise FitTrackError("server config missing")
    return cfg


def get_token_issuer(request: Request) -> TokenIssuer:
    tokens = getattr(request.app.state, "tokens", None)
    if tokens is None:
        raise FitTrackError("server config missing")
    return tokens


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Claims:
    """Authentication gate.

    Accepts only `Authorization: Bearer <jwt>`. Claims come straight from the
    verified token; the users table is not consulted, so a role change takes
    effect on the next login, not on tokens already in circulation.
    """

    if credentials is None or not credentials.credentials:
        raise AuthError(AuthError.MISSING)
    return tokens.verify(credentials.credentials)


def require_admin(claims: Claims = Depends(get_current_claims)) -> Claims:
    """Role gate, layered after the authentication gate."""
    if not claims.is_admin:
        raise Forbidden("admin access required")
    return claims
