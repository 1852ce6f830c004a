"""
Data models for the amistoso backend.
Domain objects only; no persistence or API logic.

Lifecycle: a MatchRequest is published by one team; another team accepts it
to form a Match; the requester reports a MatchResult that settles both teams'
ledgers.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# ---------- Request status (state machine) ----------
class RequestStatus(str, Enum):
    """MatchRequest lifecycle: active → matched → completed, or active → cancelled."""
    ACTIVE = "active"        # Published, awaiting acceptance
    MATCHED = "matched"      # Accepted; exactly one match references it
    COMPLETED = "completed"  # Its match has been settled
    CANCELLED = "cancelled"  # Withdrawn by the owner before acceptance


# ---------- Match status ----------
class MatchStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------- Football variant ----------
class FootballType(str, Enum):
    FIVE = "5"
    SEVEN = "7"
    EIGHT = "8"
    ELEVEN = "11"
    FUTSAL = "futsal"


FOOTBALL_TYPES = tuple(t.value for t in FootballType)


# ---------- Outcome of one match for one team ----------
class Outcome(str, Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


# ---------- User ----------
@dataclass
class User:
    """
    An account from the identity adapter.
    email/phone are contact details: only shown to confirmed match participants.
    """
    id: str
    username: str
    name: str
    created_at: datetime
    email: str | None = None
    phone: str | None = None
    password_hash: str | None = None

    def to_dict(self, include_contact: bool = False) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "username": self.username,
            "name": self.name,
        }
        if include_contact:
            d["email"] = self.email
            d["phone"] = self.phone
        return d


# ---------- Team ----------
@dataclass
class Team:
    """
    A team owned by one user, with its cumulative ledger.
    Invariant: total == won + lost + drawn.
    """
    id: str
    user_id: str
    name: str
    created_at: datetime
    instagram: str | None = None
    won: int = 0
    lost: int = 0
    drawn: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "instagram": self.instagram,
            "won": self.won,
            "lost": self.lost,
            "drawn": self.drawn,
            "total": self.total,
            "created_at": self.created_at.isoformat(),
        }


# ---------- MatchRequest ----------
@dataclass
class MatchRequest:
    """
    A published offer to play. Descriptive attributes are all optional
    except field_address. Only active requests may be edited, cancelled or deleted.
    """
    id: str
    user_id: str
    team_id: str
    status: str  # RequestStatus value
    created_at: datetime
    updated_at: datetime
    field_address: str | None = None
    football_type: str | None = None
    field_name: str | None = None
    country: str | None = None
    state: str | None = None
    field_price: float | None = None
    match_date: datetime | None = None
    league: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "status": self.status,
            "football_type": self.football_type,
            "field_name": self.field_name,
            "field_address": self.field_address,
            "country": self.country,
            "state": self.state,
            "field_price": self.field_price,
            "match_date": _iso(self.match_date),
            "league": self.league,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ---------- MatchResult ----------
@dataclass
class MatchResult:
    """Immutable once created. winner_id is None on a draw."""
    id: str
    match_id: str
    team1_score: int
    team2_score: int
    winner_id: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "team1_score": self.team1_score,
            "team2_score": self.team2_score,
            "winner_id": self.winner_id,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Match ----------
@dataclass
class Match:
    """
    Pairing formed when a request is accepted.
    team1/user_id1 is the requester's side, team2/user_id2 the accepter's.
    final_* fields are a snapshot of the request taken at acceptance.
    """
    id: str
    match_request_id: str
    team1_id: str
    team2_id: str
    user_id1: str
    user_id2: str
    status: str  # MatchStatus value
    created_at: datetime
    updated_at: datetime
    final_date: datetime | None = None
    final_address: str | None = None
    final_price: float | None = None
    result: MatchResult | None = None

    def participants(self) -> tuple[str, str]:
        return (self.user_id1, self.user_id2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "match_request_id": self.match_request_id,
            "team1_id": self.team1_id,
            "team2_id": self.team2_id,
            "user_id1": self.user_id1,
            "user_id2": self.user_id2,
            "status": self.status,
            "final_date": _iso(self.final_date),
            "final_address": self.final_address,
            "final_price": self.final_price,
            "result": self.result.to_dict() if self.result else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
