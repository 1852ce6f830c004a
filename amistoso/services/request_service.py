"""
Request lifecycle: create, edit, cancel, delete and list match requests.
The active -> matched transition belongs to the settlement engine.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from amistoso.errors import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from amistoso.models import MatchRequest, RequestStatus
from amistoso.persistence.repositories import MatchRequestRepository
from amistoso.services.authorization import AuthorizationGuard
from amistoso.services.validation import (
    DESCRIPTION_MAX,
    FIELD_ADDRESS_MAX,
    FIELD_NAME_MAX,
    LEAGUE_MAX,
    LOCATION_MAX,
    clean_text,
    page_window,
    parse_future_datetime,
    validate_football_type,
    validate_price,
)

logger = logging.getLogger(__name__)

_TEXT_LIMITS = {
    "field_name": FIELD_NAME_MAX,
    "country": LOCATION_MAX,
    "state": LOCATION_MAX,
    "league": LEAGUE_MAX,
    "description": DESCRIPTION_MAX,
}


def _validate_attributes(attributes: dict[str, Any], partial: bool) -> dict[str, Any]:
    """
    Normalize request attributes. On create (partial=False) field_address is
    required; on edit only the keys present are validated and returned.
    """
    out: dict[str, Any] = {}
    if not partial or "field_address" in attributes:
        out["field_address"] = clean_text(
            attributes.get("field_address"), "field_address", FIELD_ADDRESS_MAX, required=True
        )
    if "football_type" in attributes:
        out["football_type"] = validate_football_type(attributes["football_type"])
    for key, limit in _TEXT_LIMITS.items():
        if key in attributes:
            out[key] = clean_text(attributes[key], key, limit)
    if "field_price" in attributes:
        out["field_price"] = validate_price(attributes["field_price"])
    if attributes.get("match_date") is not None:
        out["match_date"] = parse_future_datetime(attributes["match_date"], "match_date")
    elif "match_date" in attributes and partial:
        out["match_date"] = None
    return out


class RequestService:
    """
    Domain logic for match requests. Only active requests can be edited,
    cancelled or deleted; every status change is a conditional update.
    """

    def __init__(self) -> None:
        self._request_repo = MatchRequestRepository()
        self._guard = AuthorizationGuard()

    def create_request(
        self,
        conn: sqlite3.Connection,
        owner_id: str,
        team_id: str,
        attributes: dict[str, Any],
    ) -> MatchRequest:
        """A team may hold any number of active requests at once."""
        self._guard.require_team_owner(conn, owner_id, team_id)
        clean = _validate_attributes(attributes, partial=False)
        request = self._request_repo.create(conn, owner_id, team_id, clean)
        logger.info("Request created id=%s team=%s owner=%s", request.id, team_id, owner_id)
        return request

    def get_request(self, conn: sqlite3.Connection, request_id: str) -> MatchRequest:
        request = self._request_repo.get(conn, request_id)
        if request is None:
            raise NotFoundError("Request not found")
        return request

    def update_request(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        caller_id: str,
        changes: dict[str, Any],
    ) -> MatchRequest:
        """Edits never reach an accepted match: its fields were snapshotted at acceptance."""
        request = self._load_withdrawable(conn, request_id, caller_id, "edited")
        clean = _validate_attributes(changes, partial=True)
        if not self._request_repo.update_if_active(conn, request.id, clean):
            raise ConflictError("Request was accepted or withdrawn concurrently")
        return self.get_request(conn, request_id)

    def cancel_request(self, conn: sqlite3.Connection, request_id: str, caller_id: str) -> MatchRequest:
        """Withdraw an unaccepted request; the row stays, with status=cancelled."""
        self._load_withdrawable(conn, request_id, caller_id, "cancelled")
        if not self._request_repo.transition_status(
            conn, request_id, RequestStatus.ACTIVE.value, RequestStatus.CANCELLED.value
        ):
            logger.warning("Cancel lost race request=%s caller=%s", request_id, caller_id)
            raise ConflictError("Request was accepted or withdrawn concurrently")
        logger.info("Request cancelled id=%s", request_id)
        return self.get_request(conn, request_id)

    def delete_request(self, conn: sqlite3.Connection, request_id: str, caller_id: str) -> None:
        """Remove an unaccepted request outright. Same guards as cancel_request."""
        self._load_withdrawable(conn, request_id, caller_id, "deleted")
        if not self._request_repo.delete_if_active(conn, request_id):
            logger.warning("Delete lost race request=%s caller=%s", request_id, caller_id)
            raise ConflictError("Request was accepted or withdrawn concurrently")
        logger.info("Request deleted id=%s", request_id)

    def list_user_requests(
        self, conn: sqlite3.Connection, user_id: str, status: str | None = None
    ) -> list[MatchRequest]:
        if status is not None and status not in {s.value for s in RequestStatus}:
            raise ValidationError(f"Unknown request status: {status}", field="status")
        return self._request_repo.list_by_user(conn, user_id, status)

    def list_available_requests(
        self,
        conn: sqlite3.Connection,
        exclude_user_id: str | None = None,
        football_type: str | None = None,
        country: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> dict[str, Any]:
        """Active requests open to acceptance, paginated."""
        football_type = validate_football_type(football_type)
        p, size, offset = page_window(page, page_size)
        requests = self._request_repo.list_active(
            conn, exclude_user_id, football_type, country, limit=size, offset=offset
        )
        total = self._request_repo.count_active(conn, exclude_user_id, football_type, country)
        return {
            "requests": requests,
            "pagination": {
                "page": p,
                "page_size": size,
                "total": total,
                "total_pages": (total + size - 1) // size,
            },
        }

    def _load_withdrawable(
        self, conn: sqlite3.Connection, request_id: str, caller_id: str, verb: str
    ) -> MatchRequest:
        request = self.get_request(conn, request_id)
        self._guard.require_request_owner(request, caller_id)
        if request.status != RequestStatus.ACTIVE.value:
            raise BusinessRuleError(
                f"Only active requests can be {verb} (current: {request.status})"
            )
        return request
