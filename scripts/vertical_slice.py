#!/usr/bin/env python3
"""
Vertical slice: publish request → accept → register result → read ledgers.
Run from project root: python3 scripts/vertical_slice.py
"""
from __future__ import annotations

import json
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from amistoso.config import configure_logging
from amistoso.persistence import UserRepository, get_connection, init_db
from amistoso.persistence.db import set_db_path
from amistoso.services import RequestService, SettlementService, TeamLedgerService


def main() -> None:
    configure_logging()
    # Use data/vertical_slice.db for demo (distinct from amistoso.db)
    db_path = PROJECT_ROOT / "data" / "vertical_slice.db"
    set_db_path(db_path)
    init_db(db_path=db_path)

    conn = get_connection()
    try:
        user_repo = UserRepository()
        ledger = TeamLedgerService()
        requests = RequestService()
        settlement = SettlementService()

        # 1. Two users, one team each (suffix keeps reruns unique)
        suffix = uuid.uuid4().hex[:6]
        home = user_repo.create(conn, f"home-{suffix}", "", name="Home Captain")
        away = user_repo.create(conn, f"away-{suffix}", "", name="Away Captain")
        home_team = ledger.create_team(conn, home.id, "Los Amigos")
        away_team = ledger.create_team(conn, away.id, "Deportivo Visita")
        print(f"Created teams: {home_team.name} / {away_team.name}")

        # 2. Home publishes a request
        request = requests.create_request(
            conn,
            home.id,
            home_team.id,
            {
                "field_address": "Cancha Municipal 3",
                "football_type": "7",
                "field_price": 120,
                "match_date": datetime.now(timezone.utc) + timedelta(days=5),
            },
        )
        print(f"Published request {request.id} ({request.status})")

        # 3. Away accepts
        match = settlement.accept_request(conn, request.id, away.id, away_team.id)
        print(f"Match formed {match.id} at {match.final_address}")

        # 4. Home reports 3-1
        result = settlement.register_result(conn, match.id, home.id, 3, 1)
        print(f"Result registered: {result.team1_score}-{result.team2_score}, winner={result.winner_id}")

        # 5. Read back
        for team_id in (home_team.id, away_team.id):
            print(json.dumps(ledger.team_stats(conn, team_id), indent=2))
    finally:
        conn.close()


if __name__ == "__main__":
    main()
