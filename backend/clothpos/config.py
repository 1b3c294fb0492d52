# backend/clothpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/clothpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///clothpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Retry policy for concurrency conflicts (OperationalError / StaleDataError)
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    # Default page size for stock history reads
    HISTORY_DEFAULT_LIMIT = int(os.environ.get("HISTORY_DEFAULT_LIMIT", "20"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
    RETRY_BACKOFF_BASE = 0.0
