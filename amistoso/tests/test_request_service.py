"""
Tests for match request lifecycle: validation, ownership, withdraw guards, listing.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from amistoso.errors import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from amistoso.models import RequestStatus
from amistoso.persistence.db import get_connection, init_db, set_db_path
from amistoso.persistence.repositories import MatchRequestRepository, TeamRepository, UserRepository
from amistoso.services.request_service import RequestService
from amistoso.services.settlement_service import SettlementService


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "request_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def service():
    return RequestService()


@pytest.fixture
def players(db_conn):
    """Two users with one team each: (alice, alice_team, bob, bob_team)."""
    users = UserRepository()
    teams = TeamRepository()
    alice = users.create(db_conn, "alice", "x")
    bob = users.create(db_conn, "bob", "x")
    return alice, teams.create(db_conn, alice.id, "Alice FC"), bob, teams.create(db_conn, bob.id, "Bob United")


def _future(days=7) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def test_create_request_minimal(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": " Calle 1 "})
    assert req.status == RequestStatus.ACTIVE.value
    assert req.field_address == "Calle 1"
    assert req.match_date is None
    assert service.get_request(db_conn, req.id).field_address == "Calle 1"


def test_create_request_full_attributes(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(
        db_conn,
        alice.id,
        alice_team.id,
        {
            "field_address": "Av. Siempre Viva 742",
            "football_type": "7",
            "field_name": "Cancha Norte",
            "country": "AR",
            "state": "Cordoba",
            "field_price": 1500,
            "match_date": _future(),
            "league": "Sunday",
            "description": "Friendly",
        },
    )
    stored = service.get_request(db_conn, req.id)
    assert stored.football_type == "7"
    assert stored.field_price == 1500.0
    assert stored.match_date is not None and stored.match_date.tzinfo is not None


def test_create_request_requires_team_ownership(db_conn, service, players):
    alice, _, _, bob_team = players
    with pytest.raises(UnauthorizedError):
        service.create_request(db_conn, alice.id, bob_team.id, {"field_address": "X"})


@pytest.mark.parametrize(
    "attributes, field",
    [
        ({}, "field_address"),
        ({"field_address": "   "}, "field_address"),
        ({"field_address": "X", "football_type": "6"}, "football_type"),
        ({"field_address": "X", "field_price": -1}, "field_price"),
        ({"field_address": "X", "field_price": 100000}, "field_price"),
        ({"field_address": "X", "description": "d" * 2001}, "description"),
        ({"field_address": "X", "match_date": "not a date"}, "match_date"),
    ],
)
def test_create_request_validation(db_conn, service, players, attributes, field):
    alice, alice_team, _, _ = players
    with pytest.raises(ValidationError) as exc:
        service.create_request(db_conn, alice.id, alice_team.id, attributes)
    assert exc.value.field == field


def test_create_request_past_date_rejected(db_conn, service, players):
    alice, alice_team, _, _ = players
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    with pytest.raises(ValidationError):
        service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "X", "match_date": past})


def test_team_may_hold_several_active_requests(db_conn, service, players):
    alice, alice_team, _, _ = players
    service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "B"})
    active = service.list_user_requests(db_conn, alice.id, RequestStatus.ACTIVE.value)
    assert len(active) == 2


def test_cancel_request(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    cancelled = service.cancel_request(db_conn, req.id, alice.id)
    assert cancelled.status == RequestStatus.CANCELLED.value
    with pytest.raises(BusinessRuleError):
        service.cancel_request(db_conn, req.id, alice.id)


def test_cancel_or_delete_by_non_owner(db_conn, service, players):
    alice, alice_team, bob, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    with pytest.raises(UnauthorizedError):
        service.cancel_request(db_conn, req.id, bob.id)
    with pytest.raises(UnauthorizedError):
        service.delete_request(db_conn, req.id, bob.id)
    assert service.get_request(db_conn, req.id).status == RequestStatus.ACTIVE.value


def test_delete_request(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    service.delete_request(db_conn, req.id, alice.id)
    with pytest.raises(NotFoundError):
        service.get_request(db_conn, req.id)


def test_accepted_request_cannot_be_withdrawn_or_edited(db_conn, service, players):
    alice, alice_team, bob, bob_team = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    SettlementService().accept_request(db_conn, req.id, bob.id, bob_team.id)
    with pytest.raises(BusinessRuleError):
        service.cancel_request(db_conn, req.id, alice.id)
    with pytest.raises(BusinessRuleError):
        service.delete_request(db_conn, req.id, alice.id)
    with pytest.raises(BusinessRuleError):
        service.update_request(db_conn, req.id, alice.id, {"field_address": "B"})
    assert service.get_request(db_conn, req.id).status == RequestStatus.MATCHED.value


def test_update_request_partial(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(
        db_conn, alice.id, alice_team.id, {"field_address": "A", "league": "Old"}
    )
    updated = service.update_request(db_conn, req.id, alice.id, {"league": "New", "field_price": 10})
    assert updated.league == "New"
    assert updated.field_price == 10.0
    assert updated.field_address == "A"


def test_update_request_cannot_blank_address(db_conn, service, players):
    alice, alice_team, _, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    with pytest.raises(ValidationError):
        service.update_request(db_conn, req.id, alice.id, {"field_address": ""})


def test_cancel_lost_race_is_conflict(db_conn, service, players, monkeypatch):
    alice, alice_team, _, _ = players
    req = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "A"})
    monkeypatch.setattr(MatchRequestRepository, "transition_status", lambda *a, **k: False)
    with pytest.raises(ConflictError):
        service.cancel_request(db_conn, req.id, alice.id)


def test_list_user_requests_unknown_status(db_conn, service, players):
    alice, _, _, _ = players
    with pytest.raises(ValidationError):
        service.list_user_requests(db_conn, alice.id, "archived")


def test_list_available_excludes_own_and_paginates(db_conn, service, players):
    alice, alice_team, bob, bob_team = players
    for i in range(5):
        service.create_request(
            db_conn, alice.id, alice_team.id, {"field_address": f"F{i}", "football_type": "5"}
        )
    service.create_request(db_conn, bob.id, bob_team.id, {"field_address": "Bob field"})
    cancelled = service.create_request(db_conn, alice.id, alice_team.id, {"field_address": "gone"})
    service.cancel_request(db_conn, cancelled.id, alice.id)

    out = service.list_available_requests(db_conn, exclude_user_id=bob.id, page=2, page_size=2)
    assert out["pagination"] == {"page": 2, "page_size": 2, "total": 5, "total_pages": 3}
    assert len(out["requests"]) == 2
    assert all(r.user_id == alice.id for r in out["requests"])

    typed = service.list_available_requests(db_conn, football_type="5")
    assert typed["pagination"]["total"] == 5


def test_list_available_caps_page_size(db_conn, service, players):
    out = service.list_available_requests(db_conn, page_size=500)
    assert out["pagination"]["page_size"] == 100


def test_available_requests_sorted_by_instant_across_offsets(db_conn, service, players):
    alice, alice_team, _, _ = players
    base = (datetime.now(timezone.utc) + timedelta(days=10)).replace(microsecond=0)
    early = base.astimezone(timezone(timedelta(hours=9)))
    late = (base + timedelta(hours=3)).astimezone(timezone(timedelta(hours=-9)))
    service.create_request(
        db_conn, alice.id, alice_team.id, {"field_address": "late", "match_date": late.isoformat()}
    )
    service.create_request(
        db_conn, alice.id, alice_team.id, {"field_address": "early", "match_date": early.isoformat()}
    )
    out = service.list_available_requests(db_conn)
    assert [r.field_address for r in out["requests"]] == ["early", "late"]
    assert all(r.match_date.utcoffset() == timedelta(0) for r in out["requests"])
    assert out["requests"][0].match_date == base
