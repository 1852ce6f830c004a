"""
Repository interfaces for amistoso data.
No business logic, only read/write operations.

Methods never commit: outside transaction() each statement autocommits,
inside it the caller owns commit/rollback. Conditional writes return whether
a row was affected so callers can detect a lost race.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from amistoso.models import Match, MatchRequest, MatchResult, Team, User


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _placeholders(values: Iterable[Any]) -> str:
    return ", ".join("?" for _ in values)


# ---------- UserRepository ----------


class UserRepository:
    """Accounts for the identity adapter. Passwords are stored hashed only."""

    def create(
        self,
        conn: sqlite3.Connection,
        username: str,
        password_hash: str,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        id: str | None = None,
    ) -> User:
        uid = id or str(uuid.uuid4())
        now = _now()
        display_name = name or username
        conn.execute(
            "INSERT INTO users (id, username, name, email, phone, password_hash, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (uid, username, display_name, email, phone, password_hash, now.isoformat()),
        )
        return User(
            id=uid, username=username, name=display_name, created_at=now,
            email=email, phone=phone, password_hash=password_hash,
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, name, email, phone, password_hash, created_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, name, email, phone, password_hash, created_at FROM users WHERE username = ?",
            (username,),
        ).fetchone()
        return _row_to_user(row) if row is not None else None

    def count(self, conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT COUNT(*) FROM users").fetchone()
        return int(row[0])


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        name=row["name"],
        created_at=_parse_datetime(row["created_at"]),
        email=row["email"],
        phone=row["phone"],
        password_hash=row["password_hash"],
    )


# ---------- TeamRepository ----------

_TEAM_COLS = "id, user_id, name, instagram, won, lost, drawn, total, created_at"


def _row_to_team(row: sqlite3.Row) -> Team:
    return Team(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        instagram=row["instagram"],
        won=row["won"],
        lost=row["lost"],
        drawn=row["drawn"],
        total=row["total"],
        created_at=_parse_datetime(row["created_at"]),
    )


class TeamRepository:
    """CRUD for teams plus atomic ledger increments."""

    def create(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        name: str,
        instagram: str | None = None,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO teams (id, user_id, name, instagram, won, lost, drawn, total, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 0, 0, 0, 0, ?, ?)",
            (tid, user_id, name, instagram, now.isoformat(), now.isoformat()),
        )
        return Team(id=tid, user_id=user_id, name=name, instagram=instagram, created_at=now)

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(f"SELECT {_TEAM_COLS} FROM teams WHERE id = ?", (team_id,)).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_by_user(self, conn: sqlite3.Connection, user_id: str) -> list[Team]:
        rows = conn.execute(
            f"SELECT {_TEAM_COLS} FROM teams WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_team(r) for r in rows]

    def belongs_to_user(self, conn: sqlite3.Connection, team_id: str, user_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM teams WHERE id = ? AND user_id = ?", (team_id, user_id)
        ).fetchone()
        return row is not None

    def update_name(self, conn: sqlite3.Connection, team_id: str, name: str) -> None:
        conn.execute(
            "UPDATE teams SET name = ?, updated_at = ? WHERE id = ?",
            (name, _now().isoformat(), team_id),
        )

    def delete(self, conn: sqlite3.Connection, team_id: str) -> None:
        conn.execute("DELETE FROM teams WHERE id = ?", (team_id,))

    def increment_stats(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        won: int = 0,
        lost: int = 0,
        drawn: int = 0,
    ) -> bool:
        """
        Add to the ledger in one UPDATE; total grows by the sum of the parts.
        Never read-modify-write, so concurrent settlements cannot lose an update.
        """
        cur = conn.execute(
            "UPDATE teams SET won = won + ?, lost = lost + ?, drawn = drawn + ?, "
            "total = total + ?, updated_at = ? WHERE id = ?",
            (won, lost, drawn, won + lost + drawn, _now().isoformat(), team_id),
        )
        return cur.rowcount == 1

    def has_history(self, conn: sqlite3.Connection, team_id: str) -> bool:
        """True when any request or match references the team."""
        row = conn.execute(
            """
            SELECT
                EXISTS(SELECT 1 FROM match_requests WHERE team_id = ?)
                OR EXISTS(SELECT 1 FROM matches WHERE team1_id = ? OR team2_id = ?)
            """,
            (team_id, team_id, team_id),
        ).fetchone()
        return bool(row[0])

    def top_by_wins(self, conn: sqlite3.Connection, limit: int = 10) -> list[Team]:
        rows = conn.execute(
            f"SELECT {_TEAM_COLS} FROM teams WHERE total > 0 ORDER BY won DESC, total ASC, name ASC LIMIT ?",
            (limit,),
        ).fetchall()
        return [_row_to_team(r) for r in rows]

    def scoring_stats(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Any]:
        """Goals scored/conceded across settled matches, from the team's perspective."""
        row = conn.execute(
            """
            SELECT
                COUNT(*) AS matches_played,
                COALESCE(SUM(CASE WHEN m.team1_id = ? THEN r.team1_score ELSE r.team2_score END), 0) AS goals_scored,
                COALESCE(SUM(CASE WHEN m.team1_id = ? THEN r.team2_score ELSE r.team1_score END), 0) AS goals_conceded,
                MAX(CASE WHEN m.team1_id = ? THEN r.team1_score ELSE r.team2_score END) AS max_goals_in_match
            FROM match_results r
            JOIN matches m ON r.match_id = m.id
            WHERE m.team1_id = ? OR m.team2_id = ?
            """,
            (team_id, team_id, team_id, team_id, team_id),
        ).fetchone()
        return dict(row)


# ---------- MatchRequestRepository ----------

_REQUEST_COLS = (
    "id, user_id, team_id, football_type, field_name, field_address, country, state, "
    "field_price, match_date, league, description, status, created_at, updated_at"
)

# Descriptive columns a caller may set at creation or edit while active
REQUEST_ATTRIBUTES = (
    "football_type",
    "field_name",
    "field_address",
    "country",
    "state",
    "field_price",
    "match_date",
    "league",
    "description",
)


def _row_to_request(row: sqlite3.Row) -> MatchRequest:
    return MatchRequest(
        id=row["id"],
        user_id=row["user_id"],
        team_id=row["team_id"],
        status=row["status"],
        football_type=row["football_type"],
        field_name=row["field_name"],
        field_address=row["field_address"],
        country=row["country"],
        state=row["state"],
        field_price=row["field_price"],
        match_date=_parse_optional_datetime(row["match_date"]),
        league=row["league"],
        description=row["description"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


def _to_column_value(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


class MatchRequestRepository:
    """CRUD for match_requests. Status changes are conditional on the prior status."""

    def create(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        team_id: str,
        attributes: dict[str, Any],
        id: str | None = None,
    ) -> MatchRequest:
        rid = id or str(uuid.uuid4())
        now = _now()
        attrs = {k: attributes.get(k) for k in REQUEST_ATTRIBUTES}
        cols = ["id", "user_id", "team_id", *attrs.keys(), "status", "created_at", "updated_at"]
        args = [
            rid, user_id, team_id, *(_to_column_value(v) for v in attrs.values()),
            "active", now.isoformat(), now.isoformat(),
        ]
        conn.execute(
            f"INSERT INTO match_requests ({', '.join(cols)}) VALUES ({_placeholders(cols)})",
            args,
        )
        return MatchRequest(
            id=rid, user_id=user_id, team_id=team_id, status="active",
            created_at=now, updated_at=now, **attrs,
        )

    def get(self, conn: sqlite3.Connection, request_id: str) -> MatchRequest | None:
        row = conn.execute(
            f"SELECT {_REQUEST_COLS} FROM match_requests WHERE id = ?", (request_id,)
        ).fetchone()
        return _row_to_request(row) if row is not None else None

    def list_by_user(
        self, conn: sqlite3.Connection, user_id: str, status: str | None = None
    ) -> list[MatchRequest]:
        sql = f"SELECT {_REQUEST_COLS} FROM match_requests WHERE user_id = ?"
        args: list[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            args.append(status)
        rows = conn.execute(sql + " ORDER BY created_at DESC", args).fetchall()
        return [_row_to_request(r) for r in rows]

    def _active_filter(
        self,
        exclude_user_id: str | None,
        football_type: str | None,
        country: str | None,
    ) -> tuple[str, list[Any]]:
        where = ["status = 'active'"]
        args: list[Any] = []
        if exclude_user_id:
            where.append("user_id != ?")
            args.append(exclude_user_id)
        if football_type:
            where.append("football_type = ?")
            args.append(football_type)
        if country:
            where.append("country = ?")
            args.append(country)
        return " AND ".join(where), args

    def list_active(
        self,
        conn: sqlite3.Connection,
        exclude_user_id: str | None = None,
        football_type: str | None = None,
        country: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[MatchRequest]:
        where, args = self._active_filter(exclude_user_id, football_type, country)
        rows = conn.execute(
            f"SELECT {_REQUEST_COLS} FROM match_requests WHERE {where} "
            "ORDER BY match_date IS NULL, match_date ASC, created_at DESC LIMIT ? OFFSET ?",
            (*args, limit, offset),
        ).fetchall()
        return [_row_to_request(r) for r in rows]

    def count_active(
        self,
        conn: sqlite3.Connection,
        exclude_user_id: str | None = None,
        football_type: str | None = None,
        country: str | None = None,
    ) -> int:
        where, args = self._active_filter(exclude_user_id, football_type, country)
        row = conn.execute(f"SELECT COUNT(*) FROM match_requests WHERE {where}", args).fetchone()
        return int(row[0])

    def update_if_active(
        self, conn: sqlite3.Connection, request_id: str, changes: dict[str, Any]
    ) -> bool:
        """Apply attribute changes only while the request is still active."""
        cols = [k for k in changes if k in REQUEST_ATTRIBUTES]
        if not cols:
            row = conn.execute(
                "SELECT 1 FROM match_requests WHERE id = ? AND status = 'active'", (request_id,)
            ).fetchone()
            return row is not None
        assignments = ", ".join(f"{c} = ?" for c in cols)
        args = [_to_column_value(changes[c]) for c in cols]
        cur = conn.execute(
            f"UPDATE match_requests SET {assignments}, updated_at = ? WHERE id = ? AND status = 'active'",
            (*args, _now().isoformat(), request_id),
        )
        return cur.rowcount == 1

    def transition_status(
        self,
        conn: sqlite3.Connection,
        request_id: str,
        from_status: str,
        to_status: str,
    ) -> bool:
        """Set status=to_status WHERE status=from_status. False means the prior state no longer held."""
        cur = conn.execute(
            "UPDATE match_requests SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (to_status, _now().isoformat(), request_id, from_status),
        )
        return cur.rowcount == 1

    def delete_if_active(self, conn: sqlite3.Connection, request_id: str) -> bool:
        cur = conn.execute(
            "DELETE FROM match_requests WHERE id = ? AND status = 'active'", (request_id,)
        )
        return cur.rowcount == 1


# ---------- MatchResultRepository ----------


def _row_to_result(row: sqlite3.Row) -> MatchResult:
    return MatchResult(
        id=row["id"],
        match_id=row["match_id"],
        team1_score=row["team1_score"],
        team2_score=row["team2_score"],
        winner_id=row["winner_id"],
        created_at=_parse_datetime(row["created_at"]),
    )


class MatchResultRepository:
    """Insert and read only; results are immutable. UNIQUE(match_id) rejects a second insert."""

    def create(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        team1_score: int,
        team2_score: int,
        winner_id: str | None,
        id: str | None = None,
    ) -> MatchResult:
        rid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO match_results (id, match_id, team1_score, team2_score, winner_id, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (rid, match_id, team1_score, team2_score, winner_id, now.isoformat()),
        )
        return MatchResult(
            id=rid, match_id=match_id, team1_score=team1_score, team2_score=team2_score,
            winner_id=winner_id, created_at=now,
        )

    def get_by_match(self, conn: sqlite3.Connection, match_id: str) -> MatchResult | None:
        row = conn.execute(
            "SELECT id, match_id, team1_score, team2_score, winner_id, created_at FROM match_results WHERE match_id = ?",
            (match_id,),
        ).fetchone()
        return _row_to_result(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, match_id: str) -> bool:
        row = conn.execute("SELECT 1 FROM match_results WHERE match_id = ?", (match_id,)).fetchone()
        return row is not None

    def count_for_match(self, conn: sqlite3.Connection, match_id: str) -> int:
        row = conn.execute("SELECT COUNT(*) FROM match_results WHERE match_id = ?", (match_id,)).fetchone()
        return int(row[0])


# ---------- MatchRepository ----------

_MATCH_COLS = (
    "id, match_request_id, team1_id, team2_id, user_id1, user_id2, status, "
    "final_date, final_address, final_price, created_at, updated_at"
)


def _row_to_match(row: sqlite3.Row) -> Match:
    return Match(
        id=row["id"],
        match_request_id=row["match_request_id"],
        team1_id=row["team1_id"],
        team2_id=row["team2_id"],
        user_id1=row["user_id1"],
        user_id2=row["user_id2"],
        status=row["status"],
        final_date=_parse_optional_datetime(row["final_date"]),
        final_address=row["final_address"],
        final_price=row["final_price"],
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
    )


class MatchRepository:
    """CRUD for matches. UNIQUE(match_request_id) rejects a second match for one request."""

    def __init__(self) -> None:
        self._result_repo = MatchResultRepository()

    def create(
        self,
        conn: sqlite3.Connection,
        match_request_id: str,
        team1_id: str,
        team2_id: str,
        user_id1: str,
        user_id2: str,
        final_date: datetime | None = None,
        final_address: str | None = None,
        final_price: float | None = None,
        id: str | None = None,
    ) -> Match:
        mid = id or str(uuid.uuid4())
        now = _now()
        conn.execute(
            "INSERT INTO matches (id, match_request_id, team1_id, team2_id, user_id1, user_id2, status, "
            "final_date, final_address, final_price, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?, ?)",
            (
                mid, match_request_id, team1_id, team2_id, user_id1, user_id2,
                _to_column_value(final_date), final_address, final_price,
                now.isoformat(), now.isoformat(),
            ),
        )
        return Match(
            id=mid, match_request_id=match_request_id, team1_id=team1_id, team2_id=team2_id,
            user_id1=user_id1, user_id2=user_id2, status="pending",
            final_date=final_date, final_address=final_address, final_price=final_price,
            created_at=now, updated_at=now,
        )

    def get(self, conn: sqlite3.Connection, match_id: str, with_result: bool = True) -> Match | None:
        row = conn.execute(f"SELECT {_MATCH_COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        if row is None:
            return None
        match = _row_to_match(row)
        if with_result:
            match.result = self._result_repo.get_by_match(conn, match_id)
        return match

    def get_by_request(self, conn: sqlite3.Connection, request_id: str) -> Match | None:
        row = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE match_request_id = ?", (request_id,)
        ).fetchone()
        return _row_to_match(row) if row is not None else None

    def count_by_request(self, conn: sqlite3.Connection, request_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) FROM matches WHERE match_request_id = ?", (request_id,)
        ).fetchone()
        return int(row[0])

    def list_by_user(
        self, conn: sqlite3.Connection, user_id: str, status: str | None = None
    ) -> list[Match]:
        sql = f"SELECT {_MATCH_COLS} FROM matches WHERE (user_id1 = ? OR user_id2 = ?)"
        args: list[Any] = [user_id, user_id]
        if status:
            sql += " AND status = ?"
            args.append(status)
        rows = conn.execute(sql + " ORDER BY created_at DESC", args).fetchall()
        matches = [_row_to_match(r) for r in rows]
        for m in matches:
            m.result = self._result_repo.get_by_match(conn, m.id)
        return matches

    def head_to_head(self, conn: sqlite3.Connection, team1_id: str, team2_id: str) -> list[Match]:
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches "
            "WHERE status = 'completed' AND ((team1_id = ? AND team2_id = ?) OR (team1_id = ? AND team2_id = ?)) "
            "ORDER BY created_at DESC",
            (team1_id, team2_id, team2_id, team1_id),
        ).fetchall()
        matches = [_row_to_match(r) for r in rows]
        for m in matches:
            m.result = self._result_repo.get_by_match(conn, m.id)
        return matches

    def transition_status(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        from_statuses: tuple[str, ...],
        to_status: str,
        final_date: datetime | None = None,
    ) -> bool:
        """Set status=to_status only while status is one of from_statuses."""
        sets = "status = ?, updated_at = ?"
        args: list[Any] = [to_status, _now().isoformat()]
        if final_date is not None:
            sets += ", final_date = ?"
            args.append(final_date.isoformat())
        cur = conn.execute(
            f"UPDATE matches SET {sets} WHERE id = ? AND status IN ({_placeholders(from_statuses)})",
            (*args, match_id, *from_statuses),
        )
        return cur.rowcount == 1
