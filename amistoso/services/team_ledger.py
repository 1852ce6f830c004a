"""
Team ledger: team records and their cumulative won/lost/drawn/total counters.
Counters only move through record_outcome, called by the settlement engine
inside its transaction.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from amistoso.errors import BusinessRuleError, NotFoundError
from amistoso.models import Outcome, Team
from amistoso.persistence.repositories import TeamRepository
from amistoso.services.authorization import AuthorizationGuard
from amistoso.services.validation import INSTAGRAM_MAX, TEAM_NAME_MAX, clean_text

logger = logging.getLogger(__name__)

# Counter deltas per outcome; total always grows by one
_OUTCOME_DELTAS: dict[Outcome, dict[str, int]] = {
    Outcome.WIN: {"won": 1},
    Outcome.LOSS: {"lost": 1},
    Outcome.DRAW: {"drawn": 1},
}


def win_rate(team: Team) -> float:
    """won / total, or 0.0 for a team that has not played."""
    if team.total == 0:
        return 0.0
    return team.won / team.total


def win_rate_pct(team: Team) -> float:
    return round(win_rate(team) * 100, 2)


class TeamLedgerService:
    """Team CRUD plus the atomic ledger increments."""

    def __init__(self) -> None:
        self._team_repo = TeamRepository()
        self._guard = AuthorizationGuard()

    def create_team(
        self,
        conn: sqlite3.Connection,
        owner_id: str,
        name: Any,
        instagram: Any = None,
    ) -> Team:
        clean_name = clean_text(name, "name", TEAM_NAME_MAX, required=True)
        clean_handle = clean_text(instagram, "instagram", INSTAGRAM_MAX)
        team = self._team_repo.create(conn, owner_id, clean_name, instagram=clean_handle)
        logger.info("Team created id=%s owner=%s", team.id, owner_id)
        return team

    def get_team(self, conn: sqlite3.Connection, team_id: str) -> Team:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError("Team not found")
        return team

    def list_user_teams(self, conn: sqlite3.Connection, user_id: str) -> list[Team]:
        return self._team_repo.list_by_user(conn, user_id)

    def rename_team(self, conn: sqlite3.Connection, team_id: str, caller_id: str, name: Any) -> Team:
        team = self.get_team(conn, team_id)
        self._guard.require_team_owner(conn, caller_id, team.id)
        clean_name = clean_text(name, "name", TEAM_NAME_MAX, required=True)
        self._team_repo.update_name(conn, team_id, clean_name)
        team.name = clean_name
        return team

    def delete_team(self, conn: sqlite3.Connection, team_id: str, caller_id: str) -> None:
        """Teams referenced by any request or match keep their history and cannot be deleted."""
        team = self.get_team(conn, team_id)
        self._guard.require_team_owner(conn, caller_id, team.id)
        if self._team_repo.has_history(conn, team_id):
            raise BusinessRuleError("Teams with requests or matches cannot be deleted")
        self._team_repo.delete(conn, team_id)
        logger.info("Team deleted id=%s owner=%s", team_id, caller_id)

    def record_outcome(self, conn: sqlite3.Connection, team_id: str, outcome: Outcome) -> None:
        """Atomic storage-side increment. Call inside the settlement transaction."""
        if not self._team_repo.increment_stats(conn, team_id, **_OUTCOME_DELTAS[outcome]):
            raise NotFoundError(f"Team not found: {team_id}")

    def team_stats(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Any]:
        team = self.get_team(conn, team_id)
        scoring = self._team_repo.scoring_stats(conn, team_id)
        return {
            "team": team.to_dict(),
            "win_rate": win_rate(team),
            "win_rate_pct": win_rate_pct(team),
            "goals_scored": scoring["goals_scored"],
            "goals_conceded": scoring["goals_conceded"],
            "max_goals_in_match": scoring["max_goals_in_match"],
        }

    def top_teams(self, conn: sqlite3.Connection, limit: int = 10) -> list[Team]:
        return self._team_repo.top_by_wins(conn, max(1, min(limit, 100)))
