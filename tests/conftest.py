from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from fittrack.api.server import create_app
from fittrack.config import Config
from fittrack.db import connect, init_db

TEST_SECRET = "test-secret-0123456789-abcdefghijklmnop"
ADMIN_USERNAME = "root"
ADMIN_PASSWORD = "root-password"


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "fittrack_test.sqlite"),
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_TOKEN_EXPIRE_MINUTES=120,
        AUTH_BOOTSTRAP_ADMIN_USERNAME=ADMIN_USERNAME,
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=ADMIN_PASSWORD,
    )


@pytest.fixture
def conn(cfg):
    """One open transaction against a freshly initialized database."""
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as c:
        yield c


@pytest.fixture
def client(cfg):
    # Context manager runs the startup hook (schema + admin bootstrap).
    with TestClient(create_app(cfg)) as c:
        yield c


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, username: str, password: str) -> str:
    r = client.post("/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def register_and_login(client: TestClient, username: str, password: str) -> str:
    r = client.post("/register", json={"username": username, "password": password})
    assert r.status_code == 201, r.text
    return login(client, username, password)


@pytest.fixture
def admin_token(client) -> str:
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)
