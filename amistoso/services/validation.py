"""
Input validation shared by the services.
Every failure raises ValidationError naming the offending field.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from amistoso.errors import ValidationError
from amistoso.models import FOOTBALL_TYPES

SCORE_MIN = 0
SCORE_MAX = 99
PRICE_MAX = 99999.99

TEAM_NAME_MAX = 100
INSTAGRAM_MAX = 100
FIELD_ADDRESS_MAX = 500
FIELD_NAME_MAX = 200
LOCATION_MAX = 100
LEAGUE_MAX = 100
DESCRIPTION_MAX = 2000

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clean_text(
    value: Any,
    field: str,
    max_len: int,
    required: bool = False,
) -> str | None:
    """Trim; empty becomes None (or an error when required)."""
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    text = " ".join(value.split())
    if not text:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if len(text) > max_len:
        raise ValidationError(f"{field} cannot exceed {max_len} characters", field=field)
    return text


def parse_datetime(value: Any, field: str) -> datetime:
    """Accept a datetime or ISO-8601 string; naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field} is not a valid date", field=field) from None
    else:
        raise ValidationError(f"{field} is not a valid date", field=field)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # Stored as UTC text so lexical order is chronological order
    return dt.astimezone(timezone.utc)


def parse_future_datetime(value: Any, field: str, now: datetime | None = None) -> datetime:
    dt = parse_datetime(value, field)
    if dt < (now or datetime.now(timezone.utc)):
        raise ValidationError(f"{field} cannot be in the past", field=field)
    return dt


def validate_football_type(value: Any) -> str | None:
    if value is None or value == "":
        return None
    value = str(value).strip().lower()
    if value not in FOOTBALL_TYPES:
        raise ValidationError(
            f"football_type must be one of: {', '.join(FOOTBALL_TYPES)}", field="football_type"
        )
    return value


def validate_price(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("field_price must be a number", field="field_price")
    if not (0 <= value <= PRICE_MAX):
        raise ValidationError(f"field_price must be between 0 and {PRICE_MAX}", field="field_price")
    return round(float(value), 2)


def validate_score(value: Any, field: str) -> int:
    """Integer goals in [0, 99]. bool is rejected even though it is an int subclass."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if not (SCORE_MIN <= value <= SCORE_MAX):
        raise ValidationError(f"{field} must be between {SCORE_MIN} and {SCORE_MAX}", field=field)
    return value


def page_window(page: int | None, page_size: int | None) -> tuple[int, int, int]:
    """Return (page, page_size, offset). page_size is capped at MAX_PAGE_SIZE."""
    p = page or 1
    size = min(page_size or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    if p < 1:
        raise ValidationError("page must be >= 1", field="page")
    if size < 1:
        raise ValidationError("page_size must be >= 1", field="page_size")
    return p, size, (p - 1) * size
