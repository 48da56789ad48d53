# Overview: Retry policy for single store writes; encapsulates lock-contention handling.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError

from ..extensions import db


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one store write with retry on lock contention.

    Retries on OperationalError ("database is locked", deadlocks). Each write
    is its own unit of work, so retrying it never replays an earlier step of
    the calling operation.
    """
    if attempts is None:
        attempts = current_app.config.get("STORE_WRITE_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STORE_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
