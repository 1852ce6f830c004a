"""
Authorization guard: ownership and participation predicates.
Stateless and read-only. Predicates return bool; require_* raise UnauthorizedError.
"""
from __future__ import annotations

import sqlite3

from amistoso.errors import UnauthorizedError
from amistoso.models import Match, MatchRequest, MatchStatus
from amistoso.persistence.repositories import TeamRepository

# Match states in which each side may see the other's contact details
_CONTACT_VISIBLE_STATUSES = {MatchStatus.CONFIRMED.value, MatchStatus.COMPLETED.value}


class AuthorizationGuard:
    """Defines "owns" and "participates" once for every service."""

    def __init__(self) -> None:
        self._team_repo = TeamRepository()

    # ---------- Predicates ----------

    def owns_team(self, conn: sqlite3.Connection, user_id: str, team_id: str) -> bool:
        """False when the team does not exist."""
        return self._team_repo.belongs_to_user(conn, team_id, user_id)

    @staticmethod
    def owns_request(request: MatchRequest, user_id: str) -> bool:
        return request.user_id == user_id

    @staticmethod
    def participates(match: Match, user_id: str) -> bool:
        return user_id in match.participants()

    @staticmethod
    def is_requester(match: Match, user_id: str) -> bool:
        """The user who published the originating request (side 1)."""
        return match.user_id1 == user_id

    @staticmethod
    def can_view_contact(match: Match, user_id: str) -> bool:
        return user_id in match.participants() and match.status in _CONTACT_VISIBLE_STATUSES

    # ---------- Raising variants ----------

    def require_team_owner(self, conn: sqlite3.Connection, user_id: str, team_id: str) -> None:
        if not self.owns_team(conn, user_id, team_id):
            raise UnauthorizedError("Team does not belong to you")

    def require_request_owner(self, request: MatchRequest, user_id: str) -> None:
        if not self.owns_request(request, user_id):
            raise UnauthorizedError("Request does not belong to you")

    def require_participant(self, match: Match, user_id: str) -> None:
        if not self.participates(match, user_id):
            raise UnauthorizedError("You do not participate in this match")

    def require_requester(self, match: Match, user_id: str) -> None:
        if not self.is_requester(match, user_id):
            raise UnauthorizedError("Only the user who published the request can register the result")
