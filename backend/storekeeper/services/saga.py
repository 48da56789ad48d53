# Overview: Saga bookkeeping for multi-write operations; queues named compensations on failure.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..enums import CompensationStatus
from ..extensions import db
from ..models import PendingCompensation
from .document_store import store


class Saga:
    """
    Tracks the compensations owed by an operation while it runs.

    Usage:
        with Saga("add_to_cart") as saga:
            sale = store.create(Sale, ...)
            saga.arm("remove_from_cart", sale_id=sale.id, user_id=user_id)
            ...

    An operation arms a compensation right after the write it would undo.
    If the block raises, every armed compensation is written to the
    pending_compensations table (last armed first) and the original
    exception continues to propagate. Nothing is replayed inline; the
    operator runs `flask engine compensate`.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self._armed: list[tuple[str, dict]] = []

    def arm(self, compensation: str, **payload) -> None:
        self._armed.append((compensation, payload))

    def disarm(self, compensation: str) -> None:
        """Drop the most recently armed entry with this name."""
        for index in range(len(self._armed) - 1, -1, -1):
            if self._armed[index][0] == compensation:
                del self._armed[index]
                return

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None or not self._armed:
            return False

        db.session.rollback()
        reason = str(exc)[:255]
        for compensation, payload in reversed(self._armed):
            try:
                enqueue_compensation(self.operation, compensation, payload, reason=reason)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception(
                    "Could not queue compensation %s for %s (payload=%s)",
                    compensation, self.operation, payload,
                )
        current_app.logger.warning(
            "%s failed after partial writes (%s); queued %d compensation(s)",
            self.operation, reason, len(self._armed),
        )
        return False


def enqueue_compensation(operation: str, compensation: str, payload: dict, *, reason: str | None = None) -> PendingCompensation:
    return store.create(
        PendingCompensation,
        operation=operation,
        compensation=compensation,
        payload=payload,
        reason=reason,
        status=CompensationStatus.PENDING,
        attempts=0,
    )
