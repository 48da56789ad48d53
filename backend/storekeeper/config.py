# backend/storekeeper/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storekeeper.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storekeeper.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Retry policy for a single store write hitting a lock (see services/concurrency.py)
    STORE_WRITE_ATTEMPTS = int(os.environ.get("STORE_WRITE_ATTEMPTS", "3"))
    STORE_RETRY_BACKOFF = float(os.environ.get("STORE_RETRY_BACKOFF", "0.1"))

    # Queued compensations are marked failed after this many replays
    COMPENSATION_MAX_ATTEMPTS = int(os.environ.get("COMPENSATION_MAX_ATTEMPTS", "5"))
