from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from fittrack.config import Config, load_config
from fittrack.db import connect, init_db
from fittrack.errors import FitTrackError, Unauthorized, ValidationError

from fittrack.auth import get_current_claims, require_admin
from fittrack.auth.crud import (
    bootstrap_admin_if_needed,
    list_users,
    public_user,
    register,
    set_role,
    touch_last_login,
    verify_user_credentials,
)
from fittrack.auth.deps import get_config, get_token_issuer
from fittrack.auth.security import TokenIssuer
from fittrack.models import Claims
from fittrack.workouts import (
    admin_delete_workout,
    admin_list_all,
    create_workout,
    delete_workout,
    list_for_owner,
    update_workout,
    validate_workout_fields,
)


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def _error(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


# Row ids are 64-bit integers in both SQLite and Postgres.
RowId = Annotated[int, Path(ge=1, le=2**63 - 1)]


# -----------------------------
# Request bodies
# -----------------------------
# Fields are loosely typed on purpose: the domain validators own the rules and
# the error messages.


class CredentialsRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class WorkoutRequest(BaseModel):
    date: Any = None
    activity: Any = None
    duration: Any = None
    intensity: Any = None
    notes: Any = None
    distance: Any = None
    structured_exercises: Any = None


class RoleRequest(BaseModel):
    role: Optional[str] = None


# -----------------------------
# App
# -----------------------------


def create_app(cfg: Config | None = None) -> FastAPI:
    cfg = cfg or load_config()

    app = FastAPI(title="FitTrack", version="0.1.0")
    # Immutable for the life of the process; handlers only read them.
    app.state.cfg = cfg
    app.state.tokens = TokenIssuer(
        secret=cfg.AUTH_JWT_SECRET,
        expires_minutes=cfg.AUTH_TOKEN_EXPIRE_MINUTES,
    )

    @app.on_event("startup")
    def _on_startup() -> None:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)

        # Bootstrap first admin if needed (only when users table is empty)
        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped initial admin user: username={boot.get('username')}")

    _install_error_handlers(app)
    _install_routes(app)
    return app


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FitTrackError)
    async def _fittrack_error(request: Request, exc: FitTrackError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        if exc.status_code >= 500:
            _debug(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc.message}")
        return _error(exc.status_code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errs = exc.errors()
        loc = ".".join(str(p) for p in errs[0].get("loc", ())) if errs else ""
        return _error(400, f"invalid request: {loc}" if loc else "invalid request")

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        _debug(f"{request.method} {request.url.path} crashed: {exc.__class__.__name__}: {exc}")
        return _error(500, "internal server error")


def _install_routes(app: FastAPI) -> None:
    # -----------------------------
    # Health
    # -----------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    # -----------------------------
    # Auth
    # -----------------------------

    @app.post("/register", status_code=201)
    def auth_register(payload: CredentialsRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            user_id = register(conn, username=payload.username or "", password=payload.password or "")
        return {"message": "user registered", "id": user_id}

    @app.post("/login")
    def auth_login(
        payload: CredentialsRequest,
        cfg: Config = Depends(get_config),
        tokens: TokenIssuer = Depends(get_token_issuer),
    ) -> Dict[str, Any]:
        if not payload.username or not payload.password:
            raise ValidationError("username and password are required")

        with connect(cfg.DB_DSN) as conn:
            user_row = verify_user_credentials(conn, payload.username, payload.password)
            if user_row is None:
                raise Unauthorized("invalid username or password")

            touch_last_login(conn, int(user_row["user_id"]))
            token = tokens.issue_for(user_row)
            u = public_user(user_row)

        return {"message": "login successful", "token": token, "token_type": "bearer", "user": u}

    @app.get("/me")
    def auth_me(claims: Claims = Depends(get_current_claims)) -> Dict[str, Any]:
        return {"user": claims.public()}

    # -----------------------------
    # Workouts (scoped to the caller)
    # -----------------------------

    @app.post("/workouts", status_code=201)
    def workouts_create(
        payload: WorkoutRequest,
        claims: Claims = Depends(get_current_claims),
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        fields = validate_workout_fields(payload.model_dump())
        with connect(cfg.DB_DSN) as conn:
            workout_id = create_workout(conn, owner_id=claims.user_id, fields=fields)
        return {"message": "workout saved", "id": workout_id}

    @app.get("/workouts")
    def workouts_list(
        claims: Claims = Depends(get_current_claims),
        cfg: Config = Depends(get_config),
    ) -> List[Dict[str, Any]]:
        with connect(cfg.DB_DSN) as conn:
            return list_for_owner(conn, owner_id=claims.user_id)

    @app.put("/workouts/{workout_id}")
    def workouts_update(
        workout_id: RowId,
        payload: WorkoutRequest,
        claims: Claims = Depends(get_current_claims),
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        fields = validate_workout_fields(payload.model_dump())
        with connect(cfg.DB_DSN) as conn:
            update_workout(conn, workout_id=workout_id, owner_id=claims.user_id, fields=fields)
        return {"message": "workout updated"}

    @app.delete("/workouts/{workout_id}")
    def workouts_delete(
        workout_id: RowId,
        claims: Claims = Depends(get_current_claims),
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            delete_workout(conn, workout_id=workout_id, owner_id=claims.user_id)
        return {"message": "workout deleted"}

    # -----------------------------
    # Admin
    # -----------------------------

    @app.get("/admin/users")
    def admin_users(
        _admin: Claims = Depends(require_admin),
        cfg: Config = Depends(get_config),
    ) -> List[Dict[str, Any]]:
        with connect(cfg.DB_DSN) as conn:
            return list_users(conn)

    @app.put("/admin/users/{user_id}/role")
    def admin_set_role(
        user_id: RowId,
        payload: RoleRequest,
        admin: Claims = Depends(require_admin),
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            set_role(conn, target_user_id=user_id, new_role=payload.role or "")
        _debug(f"admin user_id={admin.user_id} set role of user_id={user_id} to {payload.role}")
        return {"message": "role updated"}

    @app.get("/admin/workouts")
    def admin_workouts(
        _admin: Claims = Depends(require_admin),
        cfg: Config = Depends(get_config),
    ) -> List[Dict[str, Any]]:
        with connect(cfg.DB_DSN) as conn:
            return admin_list_all(conn)

    @app.delete("/admin/workouts/{workout_id}")
    def admin_workouts_delete(
        workout_id: RowId,
        _admin: Claims = Depends(require_admin),
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            admin_delete_workout(conn, workout_id=workout_id)
        return {"message": "workout deleted (admin)"}


app = create_app()
