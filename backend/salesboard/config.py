# backend/salesboard/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/salesboard.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///salesboard.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" keeps the ledger in the database, "memory" in the process
    LEDGER_BACKEND = os.environ.get("LEDGER_BACKEND", "sql").lower()

    # Upload ceiling enforced by Flask before the request body is read
    MAX_UPLOAD_BYTES = _int_env("MAX_UPLOAD_BYTES", 50 * 1024 * 1024)
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES

    SESSION_DURATION_HOURS = _int_env("SESSION_DURATION_HOURS", 8)
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # 0 disables the ceiling
    INGEST_MAX_ROWS = _int_env("INGEST_MAX_ROWS", 0)
    INGEST_MAX_SECONDS = _float_env("INGEST_MAX_SECONDS", 0.0)

    # "today" keeps rows with unreadable dates (dated today), "reject" counts them as errors
    DATE_FALLBACK = os.environ.get("DATE_FALLBACK", "today").lower()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
