"""
Error taxonomy shared by services and the API.
Every AppError is recoverable by the caller; kind distinguishes them on the wire.
"""
from __future__ import annotations

import sqlite3


class AppError(Exception):
    """Base for all domain errors. status_code is the HTTP mapping."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.message}


class ValidationError(AppError, ValueError):
    """Malformed or out-of-range input. field names the offending input."""

    kind = "validation"
    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, str]:
        d = super().to_dict()
        if self.field is not None:
            d["field"] = self.field
        return d


class UnauthenticatedError(AppError):
    """Missing, invalid or expired credentials."""

    kind = "unauthenticated"
    status_code = 401


class UnauthorizedError(AppError):
    """Caller lacks ownership or participation."""

    kind = "unauthorized"
    status_code = 403


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404


class ConflictError(AppError):
    """Lost a race against a uniqueness or conditional-update guard."""

    kind = "conflict"
    status_code = 409


class BusinessRuleError(AppError):
    """Operation contradicts the current lifecycle state."""

    kind = "business_rule"
    status_code = 422


class AlreadySettledError(ConflictError, BusinessRuleError):
    """
    A result already exists for the match. Raised both by the pre-check and
    when the UNIQUE(match_id) constraint rejects a concurrent insert, so
    callers see one outcome for a repeated settlement whatever the timing.
    """

    kind = ConflictError.kind
    status_code = ConflictError.status_code

    def __init__(self, message: str = "Match already settled") -> None:
        super().__init__(message)


class TooManyRequestsError(AppError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InternalError(AppError):
    """Unanticipated failure. Carries no caller-actionable detail."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


def translate_integrity_error(
    exc: sqlite3.IntegrityError,
    conflict_message: str,
    conflict_cls: type[ConflictError] = ConflictError,
) -> AppError:
    """
    Map a storage constraint violation to the domain taxonomy.
    UNIQUE -> Conflict; FOREIGN KEY / CHECK / NOT NULL -> Validation.
    """
    text = str(exc).upper()
    if "UNIQUE" in text or "PRIMARY KEY" in text:
        return conflict_cls(conflict_message)
    if "FOREIGN KEY" in text:
        return ValidationError("Invalid reference")
    if "CHECK" in text:
        return ValidationError("Value out of range")
    if "NOT NULL" in text:
        return ValidationError("Missing required value")
    return InternalError()
