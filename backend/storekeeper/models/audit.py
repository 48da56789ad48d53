from __future__ import annotations

from ..extensions import db
from ..enums import ActivityType, CompensationStatus
from storekeeper.time_utils import to_utc_z
from .common import enum_column, enum_value


class Activity(db.Model):
    """
    Append-only audit trail of domain events.

    Consumed by the external activity feed; the engine never reads it back to
    make a decision.
    """
    __tablename__ = "activities"
    __table_args__ = (
        db.Index("ix_activities_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    module = db.Column(db.String(32), nullable=False, index=True)  # sale, order, purchase, product, debt, transaction ...
    type = enum_column(ActivityType, nullable=False, index=True)
    event = db.Column(db.String(64), nullable=False)  # e.g. SaleAddedToCart

    description = db.Column(db.String(255), nullable=False)
    data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "module": self.module,
            "type": enum_value(self.type),
            "event": self.event,
            "description": self.description,
            "data": self.data,
            "created_at": to_utc_z(self.created_at),
        }


class PendingCompensation(db.Model):
    """
    Durable record of a compensating call owed after a partially applied operation.

    operation: the public operation that failed (e.g. add_to_cart)
    compensation: the registered compensation to replay (e.g. remove_from_cart)
    payload: keyword arguments for the compensation
    """
    __tablename__ = "pending_compensations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    operation = db.Column(db.String(64), nullable=False)
    compensation = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    status = enum_column(CompensationStatus, nullable=False, default=CompensationStatus.PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation": self.operation,
            "compensation": self.compensation,
            "payload": self.payload,
            "reason": self.reason,
            "status": enum_value(self.status),
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
