"""
REST API for the amistoso backend.
Thin wrappers around the services: parse input, resolve the caller, shape responses.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, StrictInt
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from amistoso import config
from amistoso.auth import create_access_token, decode_token, hash_password, verify_password
from amistoso.errors import (
    AppError,
    ConflictError,
    InternalError,
    UnauthenticatedError,
    translate_integrity_error,
)
from amistoso.models import Match, MatchRequest, Team
from amistoso.persistence import UserRepository, get_connection, init_db
from amistoso.persistence.db import get_db_path
from amistoso.rate_limit import limiter, rate_limit_exceeded_handler
from amistoso.services import (
    AuthorizationGuard,
    RequestService,
    SettlementService,
    TeamLedgerService,
    win_rate,
)

logger = logging.getLogger(__name__)

# Passwords longer than this are truncated before hashing
_MAX_PASSWORD_BYTES = 72


def _truncate_password(s: str) -> str:
    b = s.encode("utf-8")
    if len(b) <= _MAX_PASSWORD_BYTES:
        return s
    return b[:_MAX_PASSWORD_BYTES].decode("utf-8", errors="ignore")


@contextmanager
def db_conn() -> Generator[sqlite3.Connection, None, None]:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config.configure_logging()
    init_db(db_path=get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="Amistoso API",
    description="Friendly football match requests, matches and results",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(p) for p in first.get("loc", ()) if p != "body"]
    body: dict[str, Any] = {"error": "validation", "detail": first.get("msg", "Invalid input")}
    if loc:
        body["field"] = ".".join(loc)
    return JSONResponse(status_code=400, content=body)


@app.exception_handler(Exception)
async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    route = request.scope.get("route")
    logger.exception(
        "Unhandled error op=%s %s path_params=%s at=%s",
        request.method,
        getattr(route, "path", request.url.path),
        dict(request.path_params),
        datetime.now(timezone.utc).isoformat(),
    )
    return JSONResponse(status_code=500, content=InternalError().to_dict())


# ---------- Request/Response models ----------

security = HTTPBearer(auto_error=False)


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6)
    name: str | None = Field(None, max_length=200)
    email: str | None = Field(None, max_length=200)
    phone: str | None = Field(None, max_length=30)


class LoginRequest(BaseModel):
    username: str
    password: str


class CreateTeamRequest(BaseModel):
    name: str
    instagram: str | None = None


class RenameTeamRequest(BaseModel):
    name: str


class CreateMatchRequestBody(BaseModel):
    team_id: str
    field_address: str | None = None
    football_type: str | None = Field(None, description="One of: 5, 7, 8, 11, futsal")
    field_name: str | None = None
    country: str | None = None
    state: str | None = None
    field_price: float | None = None
    match_date: str | None = Field(None, description="ISO-8601; must not be in the past")
    league: str | None = None
    description: str | None = None


class UpdateMatchRequestBody(BaseModel):
    field_address: str | None = None
    football_type: str | None = None
    field_name: str | None = None
    country: str | None = None
    state: str | None = None
    field_price: float | None = None
    match_date: str | None = None
    league: str | None = None
    description: str | None = None


class AcceptRequestBody(BaseModel):
    team_id: str = Field(..., description="Accepter's team")


class ConfirmMatchBody(BaseModel):
    final_date: str


class RegisterResultBody(BaseModel):
    """Strict: booleans, numeric strings and floats are rejected, not coerced."""
    team1_score: StrictInt
    team2_score: StrictInt


def _get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """Return user_id from JWT or None if no/invalid token."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def _require_user_id(user_id: str | None = Depends(_get_current_user_id)) -> str:
    if not user_id:
        raise UnauthenticatedError("Login required")
    return user_id


# ---------- Response shaping ----------

_guard = AuthorizationGuard()


def _team_view(team: Team) -> dict[str, Any]:
    out = team.to_dict()
    out["win_rate"] = win_rate(team)
    return out


def _match_view(conn: sqlite3.Connection, match: Match, viewer_id: str) -> dict[str, Any]:
    """Participants' contact details only once the match is confirmed."""
    show_contact = _guard.can_view_contact(match, viewer_id)
    user_repo = UserRepository()
    out = match.to_dict()
    users = []
    for uid in match.participants():
        user = user_repo.get(conn, uid)
        users.append(user.to_dict(include_contact=show_contact) if user else {"id": uid})
    out["users"] = users
    out["can_register_result"] = _guard.is_requester(match, viewer_id) and match.result is None
    return out


def _request_view(request: MatchRequest) -> dict[str, Any]:
    return request.to_dict()


# ---------- Endpoints ----------


@app.get("/health")
def health() -> dict[str, Any]:
    with db_conn() as conn:
        conn.execute("SELECT 1")
    return {"ok": True, "db": "up"}


@app.get("/public/users-count")
def users_count() -> dict[str, Any]:
    """Registered accounts; no auth."""
    with db_conn() as conn:
        return {"count": UserRepository().count(conn)}


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create an account. Passwords are hashed, never stored plain."""
    with db_conn() as conn:
        user_repo = UserRepository()
        if user_repo.get_by_username(conn, req.username):
            raise ConflictError("Username already taken")
        try:
            user = user_repo.create(
                conn,
                req.username,
                hash_password(_truncate_password(req.password)),
                name=req.name,
                email=req.email,
                phone=req.phone,
            )
        except sqlite3.IntegrityError as exc:
            raise translate_integrity_error(exc, "Username already taken") from exc
        return {"user_id": user.id, "username": user.username, "token": create_access_token(user.id)}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    with db_conn() as conn:
        user = UserRepository().get_by_username(conn, req.username)
        if user is None or not verify_password(_truncate_password(req.password), user.password_hash or ""):
            raise UnauthenticatedError("Invalid username or password")
        return {"user_id": user.id, "username": user.username, "token": create_access_token(user.id)}


# ---------- Teams ----------


@app.post("/teams")
def create_team(req: CreateTeamRequest, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        team = TeamLedgerService().create_team(conn, user_id, req.name, req.instagram)
        return _team_view(team)


@app.get("/teams")
def list_teams(user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    """The caller's own teams."""
    with db_conn() as conn:
        teams = TeamLedgerService().list_user_teams(conn, user_id)
        return {"teams": [_team_view(t) for t in teams]}


@app.get("/teams/top")
def top_teams(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    with db_conn() as conn:
        teams = TeamLedgerService().top_teams(conn, limit)
        return {"teams": [_team_view(t) for t in teams]}


@app.get("/teams/{team_id}")
def get_team(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return _team_view(TeamLedgerService().get_team(conn, team_id))


@app.get("/teams/{team_id}/stats")
def get_team_stats(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return TeamLedgerService().team_stats(conn, team_id)


@app.patch("/teams/{team_id}")
def rename_team(
    team_id: str, req: RenameTeamRequest, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        return _team_view(TeamLedgerService().rename_team(conn, team_id, user_id, req.name))


@app.delete("/teams/{team_id}")
def delete_team(team_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        TeamLedgerService().delete_team(conn, team_id, user_id)
        return {"deleted": True, "id": team_id}


# ---------- Match requests ----------


@app.post("/requests")
def create_request(
    req: CreateMatchRequestBody, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    attributes = req.model_dump(exclude={"team_id"})
    with db_conn() as conn:
        request = RequestService().create_request(conn, user_id, req.team_id, attributes)
        return _request_view(request)


@app.get("/requests")
def list_my_requests(
    status: str | None = Query(None, description="active | matched | completed | cancelled"),
    user_id: str = Depends(_require_user_id),
) -> dict[str, Any]:
    with db_conn() as conn:
        requests = RequestService().list_user_requests(conn, user_id, status)
        return {"requests": [_request_view(r) for r in requests]}


@app.get("/requests/available")
def list_available_requests(
    football_type: str | None = None,
    country: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user_id: str | None = Depends(_get_current_user_id),
) -> dict[str, Any]:
    """Active requests from other users; anonymous callers see all of them."""
    with db_conn() as conn:
        out = RequestService().list_available_requests(
            conn,
            exclude_user_id=user_id,
            football_type=football_type,
            country=country,
            page=page,
            page_size=page_size,
        )
        return {
            "requests": [_request_view(r) for r in out["requests"]],
            "pagination": out["pagination"],
        }


@app.get("/requests/{request_id}")
def get_request(request_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return _request_view(RequestService().get_request(conn, request_id))


@app.patch("/requests/{request_id}")
def update_request(
    request_id: str, req: UpdateMatchRequestBody, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    with db_conn() as conn:
        return _request_view(RequestService().update_request(conn, request_id, user_id, changes))


@app.post("/requests/{request_id}/cancel")
def cancel_request(request_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        return _request_view(RequestService().cancel_request(conn, request_id, user_id))


@app.delete("/requests/{request_id}")
def delete_request(request_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        RequestService().delete_request(conn, request_id, user_id)
        return {"deleted": True, "id": request_id}


@app.post("/requests/{request_id}/accept")
def accept_request(
    request_id: str, req: AcceptRequestBody, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        match = SettlementService().accept_request(conn, request_id, user_id, req.team_id)
        return _match_view(conn, match, user_id)


# ---------- Matches ----------


@app.get("/matches")
def list_my_matches(
    status: str | None = Query(None, description="pending | confirmed | completed | cancelled"),
    user_id: str = Depends(_require_user_id),
) -> dict[str, Any]:
    with db_conn() as conn:
        matches = SettlementService().list_user_matches(conn, user_id, status)
        return {"matches": [_match_view(conn, m, user_id) for m in matches]}


@app.get("/matches/head-to-head")
def head_to_head(team1_id: str, team2_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        out = SettlementService().head_to_head(conn, team1_id, team2_id)
        out["matches"] = [m.to_dict() for m in out["matches"]]
        return out


@app.get("/matches/{match_id}")
def get_match(match_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        match = SettlementService().get_match(conn, match_id, user_id)
        return _match_view(conn, match, user_id)


@app.post("/matches/{match_id}/confirm")
def confirm_match(
    match_id: str, req: ConfirmMatchBody, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    with db_conn() as conn:
        match = SettlementService().confirm_match(conn, match_id, user_id, req.final_date)
        return _match_view(conn, match, user_id)


@app.post("/matches/{match_id}/cancel")
def cancel_match(match_id: str, user_id: str = Depends(_require_user_id)) -> dict[str, Any]:
    with db_conn() as conn:
        match = SettlementService().cancel_match(conn, match_id, user_id)
        return _match_view(conn, match, user_id)


@app.post("/matches/{match_id}/result")
def register_result(
    match_id: str, req: RegisterResultBody, user_id: str = Depends(_require_user_id)
) -> dict[str, Any]:
    """Settle the match. Only the user who published the request may report the score."""
    with db_conn() as conn:
        svc = SettlementService()
        svc.register_result(conn, match_id, user_id, req.team1_score, req.team2_score)
        match = svc.get_match(conn, match_id, user_id)
        return _match_view(conn, match, user_id)


# ---------- Run with: uvicorn amistoso.api:app --reload ----------
