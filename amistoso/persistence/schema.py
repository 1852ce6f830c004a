"""
SQLite schema for amistoso entities.
Migration-friendly: each table created with IF NOT EXISTS.

The two UNIQUE constraints (one match per request, one result per match) are
the authoritative race guards; application-level checks are only a fast path.
"""
from __future__ import annotations


def users_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        password_hash TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_users_username ON users(username);
    """


def teams_schema() -> str:
    """Ledger counters are never decremented; CHECK keeps total consistent."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        instagram TEXT,
        won INTEGER NOT NULL DEFAULT 0 CHECK (won >= 0),
        lost INTEGER NOT NULL DEFAULT 0 CHECK (lost >= 0),
        drawn INTEGER NOT NULL DEFAULT 0 CHECK (drawn >= 0),
        total INTEGER NOT NULL DEFAULT 0 CHECK (total >= 0),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK (total = won + lost + drawn),
        FOREIGN KEY (user_id) REFERENCES users(id)
    );
    CREATE INDEX IF NOT EXISTS ix_teams_user ON teams(user_id);
    """


def match_requests_schema() -> str:
    """status: active | matched | completed | cancelled."""
    return """
    CREATE TABLE IF NOT EXISTS match_requests (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        team_id TEXT NOT NULL,
        football_type TEXT,
        field_name TEXT,
        field_address TEXT,
        country TEXT,
        state TEXT,
        field_price REAL,
        match_date TEXT,
        league TEXT,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'active'
            CHECK (status IN ('active', 'matched', 'completed', 'cancelled')),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_match_requests_user ON match_requests(user_id);
    CREATE INDEX IF NOT EXISTS ix_match_requests_status ON match_requests(status);
    """


def matches_schema() -> str:
    """One match per request, ever. final_* is the acceptance-time snapshot."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        match_request_id TEXT NOT NULL,
        team1_id TEXT NOT NULL,
        team2_id TEXT NOT NULL,
        user_id1 TEXT NOT NULL,
        user_id2 TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
        final_date TEXT,
        final_address TEXT,
        final_price REAL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (match_request_id) REFERENCES match_requests(id),
        FOREIGN KEY (team1_id) REFERENCES teams(id),
        FOREIGN KEY (team2_id) REFERENCES teams(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_matches_request ON matches(match_request_id);
    CREATE INDEX IF NOT EXISTS ix_matches_user1 ON matches(user_id1);
    CREATE INDEX IF NOT EXISTS ix_matches_user2 ON matches(user_id2);
    CREATE INDEX IF NOT EXISTS ix_matches_team1 ON matches(team1_id);
    CREATE INDEX IF NOT EXISTS ix_matches_team2 ON matches(team2_id);
    """


def match_results_schema() -> str:
    """At most one result per match, ever. Scores 0-99."""
    return """
    CREATE TABLE IF NOT EXISTS match_results (
        id TEXT PRIMARY KEY,
        match_id TEXT NOT NULL,
        team1_score INTEGER NOT NULL CHECK (team1_score BETWEEN 0 AND 99),
        team2_score INTEGER NOT NULL CHECK (team2_score BETWEEN 0 AND 99),
        winner_id TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (match_id) REFERENCES matches(id),
        FOREIGN KEY (winner_id) REFERENCES teams(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ux_match_results_match ON match_results(match_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order follows foreign keys."""
    return "\n".join([
        users_schema(),
        teams_schema(),
        match_requests_schema(),
        matches_schema(),
        match_results_schema(),
    ])
