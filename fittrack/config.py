import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load a local .env file if present (no-op otherwise).
load_dotenv()


def _env_optional(name: str) -> str | None:
    """Return the stripped env value, or None when unset/blank."""
    raw = os.environ.get(name)
    if raw is None:
        return None
    v = raw.strip()
    return v or None


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Read once at process start and never mutated afterwards. The JWT secret in
    particular is handed to the token issuer when the app is built.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set FITTRACK_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: FITTRACK_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("FITTRACK_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("FITTRACK_DB_PATH", "./fittrack.sqlite")
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get(
        "AUTH_JWT_SECRET",
        "dev_change_me_to_a_long_random_secret_value",
    )
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "120"))  # 2 hours

    # Bootstrap first admin user if users table is empty.
    # Nothing is created unless a password is provided.
    AUTH_BOOTSTRAP_ADMIN_USERNAME: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_USERNAME", "admin")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str | None = _env_optional("AUTH_BOOTSTRAP_ADMIN_PASSWORD")


def load_config() -> Config:
    return Config()
