from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fittrack.api import server
from fittrack.api.server import create_app
from fittrack.auth.security import TokenIssuer

from conftest import TEST_SECRET, bearer, login, register_and_login

RUN = {"date": "2024-05-01", "activity": "Running", "duration": 30, "distance": 5}


def _create(client, token, body=None) -> int:
    r = client.post("/workouts", json=body or RUN, headers=bearer(token))
    assert r.status_code == 201, r.text
    return r.json()["id"]


def _user_id(client, admin_token, username) -> int:
    users = client.get("/admin/users", headers=bearer(admin_token)).json()
    return next(u["id"] for u in users if u["username"] == username)


# -----------------------------
# Health / errors
# -----------------------------


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_unknown_route_uses_error_body(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert "error" in r.json()


# -----------------------------
# Register / login
# -----------------------------


def test_register_returns_id(client):
    r = client.post("/register", json={"username": "alice", "password": "pw1"})
    assert r.status_code == 201
    assert isinstance(r.json()["id"], int)


def test_register_validation(client):
    r = client.post("/register", json={"username": "alice"})
    assert r.status_code == 400
    assert r.json() == {"error": "username and password are required"}


def test_register_malformed_body(client):
    r = client.post("/register", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert "error" in r.json()


def test_login_failures_are_identical(client):
    client.post("/register", json={"username": "alice", "password": "pw1"})
    wrong_pw = client.post("/login", json={"username": "alice", "password": "nope"})
    no_user = client.post("/login", json={"username": "ghost", "password": "pw1"})
    assert wrong_pw.status_code == no_user.status_code == 401
    assert wrong_pw.json() == no_user.json() == {"error": "invalid username or password"}


def test_login_token_carries_stored_role(client):
    token = register_and_login(client, "alice", "pw1")
    claims = TokenIssuer(secret=TEST_SECRET, expires_minutes=120).verify(token)
    assert claims.username == "alice"
    assert claims.role == "user"

    r = client.get("/me", headers=bearer(token))
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "user"


def test_login_response_hides_password_hash(client):
    client.post("/register", json={"username": "alice", "password": "pw1"})
    body = client.post("/login", json={"username": "alice", "password": "pw1"}).json()
    assert body["token_type"] == "bearer"
    assert "password_hash" not in body["user"]
    assert body["user"]["role"] == "user"


# -----------------------------
# Authentication gate
# -----------------------------


def test_missing_header(client):
    r = client.get("/workouts")
    assert r.status_code == 401
    assert r.headers.get("www-authenticate") == "Bearer"
    assert r.json() == {"error": "missing or invalid authorization header"}


def test_non_bearer_header(client):
    token = register_and_login(client, "alice", "pw1")
    r = client.get("/workouts", headers={"Authorization": f"Token {token}"})
    assert r.status_code == 401


def test_garbage_token(client):
    r = client.get("/workouts", headers=bearer("garbage"))
    assert r.status_code == 401
    assert r.json() == {"error": "malformed token"}


def test_foreign_signature(client):
    register_and_login(client, "alice", "pw1")
    forged = TokenIssuer(secret="attacker-secret-0123456789-abcdefghij", expires_minutes=120).issue(
        user_id=1, username="root", role="admin"
    )
    r = client.get("/admin/users", headers=bearer(forged))
    assert r.status_code == 401
    assert r.json() == {"error": "invalid token signature"}


def test_expired_token_rejected_before_mutation(client):
    token = register_and_login(client, "alice", "pw1")
    wid = _create(client, token)
    claims = TokenIssuer(secret=TEST_SECRET, expires_minutes=120).verify(token)

    stale = TokenIssuer(secret=TEST_SECRET, expires_minutes=120).issue(
        user_id=claims.user_id,
        username="alice",
        role="user",
        now=datetime.now(timezone.utc) - timedelta(hours=3),
    )
    r = client.put(f"/workouts/{wid}", json={**RUN, "duration": 99}, headers=bearer(stale))
    assert r.status_code == 401
    assert r.json() == {"error": "token expired"}

    r = client.delete(f"/workouts/{wid}", headers=bearer(stale))
    assert r.status_code == 401

    [w] = client.get("/workouts", headers=bearer(token)).json()
    assert w["duration"] == 30


# -----------------------------
# Workouts
# -----------------------------


def test_create_validation_error(client):
    token = register_and_login(client, "alice", "pw1")
    r = client.post("/workouts", json={"activity": "Running"}, headers=bearer(token))
    assert r.status_code == 400
    assert r.json() == {"error": "date, activity and duration are required"}


def test_round_trip_through_api(client):
    token = register_and_login(client, "alice", "pw1")
    gym_sets = [{"name": "Squat", "sets": 5, "reps": 5, "weight": 100}]
    _create(client, token, {**RUN, "duration": "30", "intensity": "high", "notes": "tempo"})
    _create(
        client,
        token,
        {"date": "2024-05-02", "activity": "Gym", "duration": 60, "distance": 2, "structured_exercises": gym_sets},
    )
    _create(client, token, {"date": "2024-04-28", "activity": "Yoga", "duration": 45, "distance": 1})

    gym, run, yoga = client.get("/workouts", headers=bearer(token)).json()

    assert gym["activity"] == "Gym"
    assert gym["structured_exercises"] == gym_sets
    assert gym["distance"] is None

    assert run["duration"] == 30
    assert run["distance"] == 5
    assert run["intensity"] == "high"
    assert run["notes"] == "tempo"
    assert run["structured_exercises"] is None

    assert yoga["distance"] is None


def test_list_is_scoped_to_caller(client):
    alice = register_and_login(client, "alice", "pw1")
    bob = register_and_login(client, "bob", "pw2")
    for i in range(6):
        _create(client, alice if i % 2 else bob, {**RUN, "date": f"2024-05-0{i + 1}"})

    alice_rows = client.get("/workouts", headers=bearer(alice)).json()
    bob_rows = client.get("/workouts", headers=bearer(bob)).json()
    assert len(alice_rows) == len(bob_rows) == 3
    assert {w["id"] for w in alice_rows}.isdisjoint({w["id"] for w in bob_rows})
    assert [w["date"] for w in alice_rows] == ["2024-05-06", "2024-05-04", "2024-05-02"]


def test_owner_can_update_and_delete(client):
    token = register_and_login(client, "alice", "pw1")
    wid = _create(client, token)

    r = client.put(f"/workouts/{wid}", json={**RUN, "duration": 42}, headers=bearer(token))
    assert r.status_code == 200
    [w] = client.get("/workouts", headers=bearer(token)).json()
    assert w["duration"] == 42

    r = client.delete(f"/workouts/{wid}", headers=bearer(token))
    assert r.status_code == 200
    assert client.get("/workouts", headers=bearer(token)).json() == []


def test_other_user_gets_not_found(client):
    alice = register_and_login(client, "alice", "pw1")
    bob = register_and_login(client, "bob", "pw2")
    wid = _create(client, alice)

    r_put = client.put(f"/workouts/{wid}", json={**RUN, "duration": 1}, headers=bearer(bob))
    r_del = client.delete(f"/workouts/{wid}", headers=bearer(bob))
    r_missing = client.delete(f"/workouts/{wid + 999}", headers=bearer(bob))
    assert r_put.status_code == r_del.status_code == r_missing.status_code == 404
    assert r_put.json() == r_missing.json()

    [w] = client.get("/workouts", headers=bearer(alice)).json()
    assert w["duration"] == 30


def test_admin_cannot_edit_others_workouts(client, admin_token):
    alice = register_and_login(client, "alice", "pw1")
    wid = _create(client, alice)
    r = client.put(f"/workouts/{wid}", json={**RUN, "duration": 1}, headers=bearer(admin_token))
    assert r.status_code == 404


def test_bad_workout_id_in_path(client):
    token = register_and_login(client, "alice", "pw1")
    r = client.delete("/workouts/abc", headers=bearer(token))
    assert r.status_code == 400


@pytest.mark.parametrize("duration", [10**20, "²", 10081])
def test_out_of_range_duration_is_rejected(client, duration):
    token = register_and_login(client, "alice", "pw1")
    r = client.post("/workouts", json={**RUN, "duration": duration}, headers=bearer(token))
    assert r.status_code == 400
    assert "error" in r.json()


def test_out_of_range_ids_in_path(client, admin_token):
    token = register_and_login(client, "alice", "pw1")
    huge = "99999999999999999999"
    assert client.delete(f"/workouts/{huge}", headers=bearer(token)).status_code == 400
    assert client.put(f"/workouts/{huge}", json=RUN, headers=bearer(token)).status_code == 400
    assert client.delete("/workouts/0", headers=bearer(token)).status_code == 400
    assert client.delete(f"/admin/workouts/{huge}", headers=bearer(admin_token)).status_code == 400
    r = client.put(f"/admin/users/{huge}/role", json={"role": "admin"}, headers=bearer(admin_token))
    assert r.status_code == 400
    assert "error" in r.json()


def test_storage_failure_is_a_json_500(client, monkeypatch):
    token = register_and_login(client, "alice", "pw1")

    def broken(conn, *, owner_id):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(server, "list_for_owner", broken)
    r = client.get("/workouts", headers=bearer(token))
    assert r.status_code == 500
    assert r.json() == {"error": "database error"}


def test_unexpected_crash_is_a_json_500(cfg, monkeypatch):
    def broken(conn, *, owner_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(server, "list_for_owner", broken)
    with TestClient(create_app(cfg), raise_server_exceptions=False) as c:
        token = register_and_login(c, "alice", "pw1")
        r = c.get("/workouts", headers=bearer(token))
    assert r.status_code == 500
    assert r.json() == {"error": "internal server error"}


# -----------------------------
# Admin
# -----------------------------


def test_admin_endpoints_need_admin_role(client):
    alice = register_and_login(client, "alice", "pw1")
    wid = _create(client, alice)

    for method, path in [
        ("get", "/admin/users"),
        ("get", "/admin/workouts"),
        ("delete", f"/admin/workouts/{wid}"),
    ]:
        r = getattr(client, method)(path, headers=bearer(alice))
        assert r.status_code == 403, path
        assert r.json() == {"error": "admin access required"}

    r = client.put("/admin/users/1/role", json={"role": "admin"}, headers=bearer(alice))
    assert r.status_code == 403

    # Nothing was deleted.
    assert len(client.get("/workouts", headers=bearer(alice)).json()) == 1


def test_admin_delete_any_workout(client, admin_token):
    alice = register_and_login(client, "alice", "pw1")
    bob = register_and_login(client, "bob", "pw2")
    a = _create(client, alice)
    b = _create(client, bob)

    assert client.delete(f"/admin/workouts/{a}", headers=bearer(admin_token)).status_code == 200
    assert client.delete(f"/admin/workouts/{b}", headers=bearer(admin_token)).status_code == 200
    assert client.delete(f"/admin/workouts/{b}", headers=bearer(admin_token)).status_code == 404
    assert client.get("/workouts", headers=bearer(alice)).json() == []
    assert client.get("/workouts", headers=bearer(bob)).json() == []


def test_admin_list_workouts(client, admin_token):
    alice = register_and_login(client, "alice", "pw1")
    bob = register_and_login(client, "bob", "pw2")
    a = _create(client, alice, {**RUN, "date": "2024-05-01"})
    b = _create(client, bob, {**RUN, "date": "2024-05-01"})
    c = _create(client, bob, {**RUN, "date": "2024-05-03"})

    rows = client.get("/admin/workouts", headers=bearer(admin_token)).json()
    assert [(r["id"], r["username"]) for r in rows] == [(c, "bob"), (b, "bob"), (a, "alice")]


def test_admin_list_users(client, admin_token):
    register_and_login(client, "alice", "pw1")
    users = client.get("/admin/users", headers=bearer(admin_token)).json()
    assert [u["username"] for u in users] == ["root", "alice"]
    assert [u["role"] for u in users] == ["admin", "user"]
    assert all(set(u) == {"id", "username", "role"} for u in users)


def test_set_role_errors(client, admin_token):
    register_and_login(client, "alice", "pw1")
    alice_id = _user_id(client, admin_token, "alice")

    r = client.put(f"/admin/users/{alice_id}/role", json={"role": "owner"}, headers=bearer(admin_token))
    assert r.status_code == 400
    r = client.put(f"/admin/users/{alice_id}/role", json={}, headers=bearer(admin_token))
    assert r.status_code == 400
    r = client.put("/admin/users/9999/role", json={"role": "admin"}, headers=bearer(admin_token))
    assert r.status_code == 404


def test_role_change_does_not_touch_issued_tokens(client, admin_token):
    old = register_and_login(client, "alice", "pw1")
    alice_id = _user_id(client, admin_token, "alice")

    r = client.put(f"/admin/users/{alice_id}/role", json={"role": "admin"}, headers=bearer(admin_token))
    assert r.status_code == 200

    # Old token still says "user" until it expires.
    assert client.get("/me", headers=bearer(old)).json()["user"]["role"] == "user"
    assert client.get("/admin/users", headers=bearer(old)).status_code == 403

    fresh = login(client, "alice", "pw1")
    assert client.get("/me", headers=bearer(fresh)).json()["user"]["role"] == "admin"
    assert client.get("/admin/users", headers=bearer(fresh)).status_code == 200


# -----------------------------
# End to end
# -----------------------------


def test_alice_scenario(client, admin_token):
    assert client.post("/register", json={"username": "alice", "password": "pw1"}).status_code == 201
    r = client.post("/register", json={"username": "alice", "password": "pw2"})
    assert r.status_code == 409
    assert r.json() == {"error": "username already taken"}

    r = client.post("/login", json={"username": "alice", "password": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"error": "invalid username or password"}

    r = client.post("/login", json={"username": "alice", "password": "pw1"})
    assert r.status_code == 200
    alice = r.json()["token"]
    alice_id = r.json()["user"]["id"]

    wid = _create(client, alice, {"date": "2024-05-01", "activity": "Running", "duration": 30, "distance": 5})

    mallory = register_and_login(client, "mallory", "pw3")
    r = client.put(f"/workouts/{wid}", json={**RUN, "duration": 5}, headers=bearer(mallory))
    assert r.status_code == 404

    r = client.put(f"/admin/users/{alice_id}/role", json={"role": "admin"}, headers=bearer(mallory))
    assert r.status_code == 403
    r = client.put(f"/admin/users/{alice_id}/role", json={"role": "admin"}, headers=bearer(admin_token))
    assert r.status_code == 200

    assert client.get("/me", headers=bearer(alice)).json()["user"]["role"] == "user"
    fresh = login(client, "alice", "pw1")
    assert client.get("/me", headers=bearer(fresh)).json()["user"]["role"] == "admin"
