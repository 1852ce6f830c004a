"""
Service layer: domain logic and the request/match state machine.
Persistence is delegated to repositories; atomic blocks use persistence.transaction.
"""
from .authorization import AuthorizationGuard
from .request_service import RequestService
from .settlement_service import SettlementService, decide_outcome
from .team_ledger import TeamLedgerService, win_rate

__all__ = [
    "AuthorizationGuard",
    "RequestService",
    "SettlementService",
    "TeamLedgerService",
    "decide_outcome",
    "win_rate",
]
