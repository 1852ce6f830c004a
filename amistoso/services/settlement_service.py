"""
Settlement engine: accept a request into a match, then commit exactly one
result per match and post it to both teams' ledgers.

Pre-checks before each transaction are a fast path only. The authoritative
guards are inside it: the conditional active -> matched update on the
request, and the UNIQUE constraints on matches.match_request_id and
match_results.match_id. A rejected write means a concurrent call won and
surfaces as ConflictError.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from amistoso.errors import (
    AlreadySettledError,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
    translate_integrity_error,
)
from amistoso.models import Match, MatchResult, MatchStatus, Outcome, RequestStatus
from amistoso.persistence.db import transaction
from amistoso.persistence.repositories import (
    MatchRepository,
    MatchRequestRepository,
    MatchResultRepository,
)
from amistoso.services.authorization import AuthorizationGuard
from amistoso.services.team_ledger import TeamLedgerService
from amistoso.services.validation import parse_datetime, validate_score

logger = logging.getLogger(__name__)

_OPEN_MATCH_STATUSES = (MatchStatus.PENDING.value, MatchStatus.CONFIRMED.value)


def decide_outcome(
    team1_id: str, team2_id: str, team1_score: int, team2_score: int
) -> tuple[str | None, Outcome, Outcome]:
    """Return (winner_id, team1 outcome, team2 outcome). winner_id is None on a draw."""
    if team1_score > team2_score:
        return team1_id, Outcome.WIN, Outcome.LOSS
    if team2_score > team1_score:
        return team2_id, Outcome.LOSS, Outcome.WIN
    return None, Outcome.DRAW, Outcome.DRAW


class SettlementService:
    """Acceptance, confirmation, cancellation and result registration for matches."""

    def __init__(self) -> None:
        self._request_repo = MatchRequestRepository()
        self._match_repo = MatchRepository()
        self._result_repo = MatchResultRepository()
        self._ledger = TeamLedgerService()
        self._guard = AuthorizationGuard()

    # ---------- Acceptance ----------

    def accept_request(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        accepter_id: str,
        accepter_team_id: str,
    ) -> Match:
        """
        Form a match from an active request. The request flip and the match
        insert commit together or not at all.
        """
        request = self._request_repo.get(conn, request_id)
        if request is None:
            raise NotFoundError("Request not found")
        if request.status != RequestStatus.ACTIVE.value:
            raise BusinessRuleError(f"Request is not available (current: {request.status})")
        if request.user_id == accepter_id:
            raise BusinessRuleError("You cannot accept your own request")
        self._guard.require_team_owner(conn, accepter_id, accepter_team_id)

        try:
            with transaction(conn):
                if not self._request_repo.transition_status(
                    conn, request_id, RequestStatus.ACTIVE.value, RequestStatus.MATCHED.value
                ):
                    raise ConflictError("Request was accepted or withdrawn concurrently")
                match = self._match_repo.create(
                    conn,
                    match_request_id=request.id,
                    team1_id=request.team_id,
                    team2_id=accepter_team_id,
                    user_id1=request.user_id,
                    user_id2=accepter_id,
                    final_date=request.match_date,
                    final_address=request.field_address,
                    final_price=request.field_price,
                )
        except ConflictError:
            logger.warning("Accept lost race request=%s accepter=%s", request_id, accepter_id)
            raise
        except sqlite3.IntegrityError as exc:
            logger.warning("Accept rejected by constraint request=%s: %s", request_id, exc)
            raise translate_integrity_error(exc, "Request already has a match") from exc
        logger.info(
            "Request accepted request=%s match=%s accepter=%s", request_id, match.id, accepter_id
        )
        return match

    # ---------- Result registration ----------

    def register_result(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        caller_id: str,
        team1_score: Any,
        team2_score: Any,
    ) -> MatchResult:
        """
        Settle a match. Only the user who published the request may report
        the score. Result insert, match and request completion, and both
        ledger increments are one transaction.
        """
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError("Match not found")
        self._guard.require_requester(match, caller_id)
        if match.result is not None or self._result_repo.exists(conn, match_id):
            raise AlreadySettledError()
        if match.status == MatchStatus.CANCELLED.value:
            raise BusinessRuleError("A cancelled match cannot be settled")
        s1 = validate_score(team1_score, "team1_score")
        s2 = validate_score(team2_score, "team2_score")
        winner_id, outcome1, outcome2 = decide_outcome(match.team1_id, match.team2_id, s1, s2)

        try:
            with transaction(conn):
                result = self._result_repo.create(conn, match_id, s1, s2, winner_id)
                if not self._match_repo.transition_status(
                    conn, match_id, _OPEN_MATCH_STATUSES, MatchStatus.COMPLETED.value
                ):
                    raise ConflictError("Match was cancelled or settled concurrently")
                if not self._request_repo.transition_status(
                    conn,
                    match.match_request_id,
                    RequestStatus.MATCHED.value,
                    RequestStatus.COMPLETED.value,
                ):
                    raise ConflictError("Request is no longer in matched state")
                self._ledger.record_outcome(conn, match.team1_id, outcome1)
                self._ledger.record_outcome(conn, match.team2_id, outcome2)
        except ConflictError:
            logger.warning("Settlement lost race match=%s caller=%s", match_id, caller_id)
            raise
        except sqlite3.IntegrityError as exc:
            logger.warning("Settlement rejected by constraint match=%s: %s", match_id, exc)
            raise translate_integrity_error(
                exc, "Match already settled", conflict_cls=AlreadySettledError
            ) from exc
        logger.info(
            "Result registered match=%s score=%d-%d winner=%s", match_id, s1, s2, winner_id
        )
        return result

    # ---------- Match lifecycle ----------

    def confirm_match(
        self, conn: sqlite3.Connection, match_id: str, caller_id: str, final_date: Any
    ) -> Match:
        """pending -> confirmed, fixing the final date. Either participant may confirm."""
        match = self.get_match(conn, match_id, caller_id)
        if match.status != MatchStatus.PENDING.value:
            raise BusinessRuleError(f"Only pending matches can be confirmed (current: {match.status})")
        when = parse_datetime(final_date, "final_date")
        if not self._match_repo.transition_status(
            conn, match_id, (MatchStatus.PENDING.value,), MatchStatus.CONFIRMED.value, final_date=when
        ):
            raise ConflictError("Match changed state concurrently")
        logger.info("Match confirmed match=%s by=%s", match_id, caller_id)
        return self.get_match(conn, match_id, caller_id)

    def cancel_match(self, conn: sqlite3.Connection, match_id: str, caller_id: str) -> Match:
        """
        Either participant may cancel an unsettled match. The request stays
        matched: a request yields at most one match over its lifetime.
        """
        match = self.get_match(conn, match_id, caller_id)
        if match.status == MatchStatus.COMPLETED.value:
            raise BusinessRuleError("A completed match cannot be cancelled")
        if match.status == MatchStatus.CANCELLED.value:
            raise BusinessRuleError("Match is already cancelled")
        if not self._match_repo.transition_status(
            conn, match_id, _OPEN_MATCH_STATUSES, MatchStatus.CANCELLED.value
        ):
            raise ConflictError("Match changed state concurrently")
        logger.info("Match cancelled match=%s by=%s", match_id, caller_id)
        return self.get_match(conn, match_id, caller_id)

    # ---------- Reads ----------

    def get_match(self, conn: sqlite3.Connection, match_id: str, caller_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError("Match not found")
        self._guard.require_participant(match, caller_id)
        return match

    def list_user_matches(
        self, conn: sqlite3.Connection, user_id: str, status: str | None = None
    ) -> list[Match]:
        if status is not None and status not in {s.value for s in MatchStatus}:
            raise ValidationError(f"Unknown match status: {status}", field="status")
        return self._match_repo.list_by_user(conn, user_id, status)

    def head_to_head(self, conn: sqlite3.Connection, team1_id: str, team2_id: str) -> dict[str, Any]:
        """Settled meetings between two teams and the tally from team1's side."""
        matches = self._match_repo.head_to_head(conn, team1_id, team2_id)
        wins = losses = draws = 0
        for m in matches:
            if m.result is None:
                continue
            if m.result.winner_id is None:
                draws += 1
            elif m.result.winner_id == team1_id:
                wins += 1
            else:
                losses += 1
        return {
            "team1_id": team1_id,
            "team2_id": team2_id,
            "played": len(matches),
            "team1_wins": wins,
            "team2_wins": losses,
            "draws": draws,
            "matches": matches,
        }
