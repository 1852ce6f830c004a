"""
Persistence layer for amistoso data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, init_db, transaction
from .repositories import (
    UserRepository,
    TeamRepository,
    MatchRequestRepository,
    MatchRepository,
    MatchResultRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "UserRepository",
    "TeamRepository",
    "MatchRequestRepository",
    "MatchRepository",
    "MatchResultRepository",
]
