"""
Runtime configuration from environment variables.
Defaults are for local development; override in production.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


DB_PATH = os.environ.get("AMISTOSO_DB_PATH", str(_project_root() / "data" / "amistoso.db"))
DB_TIMEOUT = float(os.environ.get("AMISTOSO_DB_TIMEOUT", "10"))

JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "amistoso-dev-secret-change-in-production")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("AMISTOSO_TOKEN_MINUTES", str(60 * 24 * 7)))

LOG_LEVEL = os.environ.get("AMISTOSO_LOG_LEVEL", "INFO")

# Fixed window per (address, route), in limits notation: "<count>/<n> <unit>"
RATE_LIMIT = int(os.environ.get("AMISTOSO_RATE_LIMIT", "100"))
RATE_WINDOW = int(os.environ.get("AMISTOSO_RATE_WINDOW", "60"))
RATE_LIMIT_DEFAULT = f"{RATE_LIMIT}/{RATE_WINDOW} seconds"

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "AMISTOSO_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(",")
    if o.strip()
]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
