"""
API integration tests.
Uses TestClient to avoid starting a server.
Requires: pip install httpx (for TestClient)
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

try:
    from fastapi.testclient import TestClient
    HAS_HTTPX = True
except (ImportError, RuntimeError):
    HAS_HTTPX = False

# Ensure project root on path
import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

pytestmark = pytest.mark.skipif(not HAS_HTTPX, reason="httpx required for TestClient")

from amistoso.api import app
from amistoso.persistence.db import init_db, set_db_path
from amistoso.rate_limit import limiter


@pytest.fixture(autouse=True)
def isolated_db(tmp_path):
    """Use a temporary DB and a fresh rate limiter for each test."""
    db_path = tmp_path / "test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    limiter.reset()
    yield db_path


@pytest.fixture
def client():
    return TestClient(app)


def _signup(client, username, **extra):
    resp = client.post("/signup", json={"username": username, "password": "secret123", **extra})
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return data["user_id"], {"Authorization": f"Bearer {data['token']}"}


def _team(client, headers, name):
    resp = client.post("/teams", json={"name": name}, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


@pytest.fixture
def two_sides(client):
    """alice (publisher) and bob (accepter), each with one team and contact details."""
    alice_id, alice_h = _signup(client, "alice", email="alice@example.com", phone="111")
    bob_id, bob_h = _signup(client, "bob", email="bob@example.com", phone="222")
    return {
        "alice": (alice_id, alice_h, _team(client, alice_h, "Alice FC")),
        "bob": (bob_id, bob_h, _team(client, bob_h, "Bob United")),
    }


def _publish(client, headers, team_id, **attrs):
    body = {"team_id": team_id, "field_address": "Calle 5", "football_type": "5", **attrs}
    resp = client.post("/requests", json=body, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_signup_duplicate_and_login(client):
    _signup(client, "carla")
    dup = client.post("/signup", json={"username": "carla", "password": "secret123"})
    assert dup.status_code == 409
    assert dup.json()["error"] == "conflict"

    ok = client.post("/login", json={"username": "carla", "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["token"]
    bad = client.post("/login", json={"username": "carla", "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.json()["error"] == "unauthenticated"


def test_users_count(client):
    assert client.get("/public/users-count").json() == {"count": 0}
    _signup(client, "dario")
    _signup(client, "elena")
    assert client.get("/public/users-count").json() == {"count": 2}


def test_auth_required(client):
    missing = client.get("/teams")
    assert missing.status_code == 401
    assert missing.json() == {"error": "unauthenticated", "detail": "Login required"}
    forged = client.get("/teams", headers={"Authorization": "Bearer not-a-jwt"})
    assert forged.status_code == 401
    assert forged.json()["error"] == "unauthenticated"


def test_full_lifecycle(client, two_sides):
    alice_id, alice_h, alice_team = two_sides["alice"]
    bob_id, bob_h, bob_team = two_sides["bob"]

    req = _publish(client, alice_h, alice_team, field_price=50)
    assert req["status"] == "active"

    avail = client.get("/requests/available", headers=bob_h).json()
    assert [r["id"] for r in avail["requests"]] == [req["id"]]
    assert avail["pagination"]["total"] == 1
    own_view = client.get("/requests/available", headers=alice_h).json()
    assert own_view["requests"] == []

    resp = client.post(f"/requests/{req['id']}/accept", json={"team_id": bob_team}, headers=bob_h)
    assert resp.status_code == 200, resp.text
    match = resp.json()
    assert match["status"] == "pending"
    assert match["final_address"] == "Calle 5"
    assert match["can_register_result"] is False

    resp = client.post(
        f"/matches/{match['id']}/result", json={"team1_score": 3, "team2_score": 1}, headers=alice_h
    )
    assert resp.status_code == 200, resp.text
    settled = resp.json()
    assert settled["status"] == "completed"
    assert settled["result"]["winner_id"] == alice_team

    a = client.get(f"/teams/{alice_team}").json()
    b = client.get(f"/teams/{bob_team}").json()
    assert (a["won"], a["lost"], a["drawn"], a["total"]) == (1, 0, 0, 1)
    assert (b["won"], b["lost"], b["drawn"], b["total"]) == (0, 1, 0, 1)
    assert a["win_rate"] == 1.0

    assert client.get(f"/requests/{req['id']}").json()["status"] == "completed"

    stats = client.get(f"/teams/{alice_team}/stats").json()
    assert stats["goals_scored"] == 3
    assert stats["win_rate_pct"] == 100.0

    top = client.get("/teams/top").json()["teams"]
    assert top[0]["id"] == alice_team

    h2h = client.get(
        "/matches/head-to-head", params={"team1_id": alice_team, "team2_id": bob_team}
    ).json()
    assert h2h["played"] == 1 and h2h["team1_wins"] == 1


def test_error_mapping(client, two_sides):
    alice_id, alice_h, alice_team = two_sides["alice"]
    bob_id, bob_h, bob_team = two_sides["bob"]
    req = _publish(client, alice_h, alice_team)

    own = client.post(f"/requests/{req['id']}/accept", json={"team_id": alice_team}, headers=alice_h)
    assert own.status_code == 422
    assert own.json()["error"] == "business_rule"

    foreign = client.post(f"/requests/{req['id']}/accept", json={"team_id": alice_team}, headers=bob_h)
    assert foreign.status_code == 403

    missing = client.post("/requests/nope/accept", json={"team_id": bob_team}, headers=bob_h)
    assert missing.status_code == 404

    match = client.post(f"/requests/{req['id']}/accept", json={"team_id": bob_team}, headers=bob_h).json()

    by_accepter = client.post(
        f"/matches/{match['id']}/result", json={"team1_score": 0, "team2_score": 4}, headers=bob_h
    )
    assert by_accepter.status_code == 403

    out_of_range = client.post(
        f"/matches/{match['id']}/result", json={"team1_score": 100, "team2_score": 0}, headers=alice_h
    )
    assert out_of_range.status_code == 400
    assert out_of_range.json()["field"] == "team1_score"

    first = client.post(
        f"/matches/{match['id']}/result", json={"team1_score": 2, "team2_score": 2}, headers=alice_h
    )
    assert first.status_code == 200
    again = client.post(
        f"/matches/{match['id']}/result", json={"team1_score": 1, "team2_score": 0}, headers=alice_h
    )
    assert again.status_code == 409

    b = client.get(f"/teams/{bob_team}").json()
    assert (b["drawn"], b["total"]) == (1, 1)


@pytest.mark.parametrize(
    "scores",
    [
        {"team1_score": True, "team2_score": "2"},
        {"team1_score": 2.0, "team2_score": 1},
        {"team1_score": 1, "team2_score": "0"},
    ],
)
def test_result_scores_are_not_coerced(client, two_sides, scores):
    _, alice_h, alice_team = two_sides["alice"]
    _, bob_h, bob_team = two_sides["bob"]
    req = _publish(client, alice_h, alice_team)
    match = client.post(f"/requests/{req['id']}/accept", json={"team_id": bob_team}, headers=bob_h).json()

    resp = client.post(f"/matches/{match['id']}/result", json=scores, headers=alice_h)
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"

    after = client.get(f"/matches/{match['id']}", headers=alice_h).json()
    assert after["status"] == "pending"
    assert after["result"] is None
    a = client.get(f"/teams/{alice_team}").json()
    assert a["total"] == 0


def test_invalid_body_is_validation_error(client, two_sides):
    _, alice_h, alice_team = two_sides["alice"]
    resp = client.post("/requests", json={"team_id": alice_team, "field_price": "cheap"}, headers=alice_h)
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation"

    past = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    resp = client.post(
        "/requests",
        json={"team_id": alice_team, "field_address": "X", "match_date": past},
        headers=alice_h,
    )
    assert resp.status_code == 400
    assert resp.json()["field"] == "match_date"


def test_contact_details_after_confirmation(client, two_sides):
    _, alice_h, alice_team = two_sides["alice"]
    _, bob_h, bob_team = two_sides["bob"]
    req = _publish(client, alice_h, alice_team)
    match = client.post(f"/requests/{req['id']}/accept", json={"team_id": bob_team}, headers=bob_h).json()

    pending = client.get(f"/matches/{match['id']}", headers=alice_h).json()
    assert all("email" not in u for u in pending["users"])

    eve_id, eve_h = _signup(client, "eve")
    assert client.get(f"/matches/{match['id']}", headers=eve_h).status_code == 403

    resp = client.post(
        f"/matches/{match['id']}/confirm", json={"final_date": "2031-01-10T19:00:00Z"}, headers=bob_h
    )
    assert resp.status_code == 200
    confirmed = client.get(f"/matches/{match['id']}", headers=alice_h).json()
    emails = {u["username"]: u["email"] for u in confirmed["users"]}
    assert emails == {"alice": "alice@example.com", "bob": "bob@example.com"}


def test_request_withdraw_routes(client, two_sides):
    _, alice_h, alice_team = two_sides["alice"]
    _, bob_h, _ = two_sides["bob"]
    keep = _publish(client, alice_h, alice_team)
    drop = _publish(client, alice_h, alice_team)

    assert client.post(f"/requests/{keep['id']}/cancel", headers=bob_h).status_code == 403
    cancelled = client.post(f"/requests/{keep['id']}/cancel", headers=alice_h)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert client.post(f"/requests/{keep['id']}/cancel", headers=alice_h).status_code == 422

    edited = client.patch(f"/requests/{drop['id']}", json={"league": "Martes"}, headers=alice_h)
    assert edited.json()["league"] == "Martes"
    assert client.delete(f"/requests/{drop['id']}", headers=alice_h).status_code == 200
    assert client.get(f"/requests/{drop['id']}").status_code == 404

    mine = client.get("/requests", params={"status": "cancelled"}, headers=alice_h).json()
    assert [r["id"] for r in mine["requests"]] == [keep["id"]]


def test_team_routes(client, two_sides):
    _, alice_h, alice_team = two_sides["alice"]
    _, bob_h, _ = two_sides["bob"]
    assert client.patch(f"/teams/{alice_team}", json={"name": "Nope"}, headers=bob_h).status_code == 403
    renamed = client.patch(f"/teams/{alice_team}", json={"name": "Alice Athletic"}, headers=alice_h)
    assert renamed.json()["name"] == "Alice Athletic"

    spare = _team(client, alice_h, "Spare")
    assert client.delete(f"/teams/{spare}", headers=alice_h).status_code == 200
    names = [t["name"] for t in client.get("/teams", headers=alice_h).json()["teams"]]
    assert names == ["Alice Athletic"]


def test_rate_limit_per_route(client):
    """Default limit is 100 per 60 seconds for each (address, route)."""
    for _ in range(100):
        assert client.get("/health").status_code == 200
    limited = client.get("/health")
    assert limited.status_code == 429
    assert limited.json()["error"] == "rate_limited"
    assert int(limited.headers["Retry-After"]) >= 1
    assert client.get("/teams/top").status_code == 200
