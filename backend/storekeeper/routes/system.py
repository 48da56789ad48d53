# backend/storekeeper/routes/system.py
"""
System health endpoint.

Reports database connectivity and the size of the compensation backlog, so
a deployment can see when `flask engine compensate` needs to run.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..enums import CompensationStatus
from ..extensions import db
from ..models import PendingCompensation, Product
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a cheap count."""
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count},
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_compensation_backlog() -> dict:
    """Pending compensations mean some operation stopped half-way."""
    try:
        pending = db.session.query(PendingCompensation).filter_by(status=CompensationStatus.PENDING).count()
        failed = db.session.query(PendingCompensation).filter_by(status=CompensationStatus.FAILED).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Compensation backlog check failed")
        return {"status": "unhealthy", "error": "Compensation queue error"}

    return {
        "status": "degraded" if pending or failed else "healthy",
        "details": {"pending": pending, "failed": failed},
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy, or degraded (compensations waiting)
    - 503: database unreachable
    """
    database_health = check_database_health()
    backlog_health = (
        check_compensation_backlog()
        if database_health["status"] == "healthy"
        else {"status": "unknown"}
    )

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif backlog_health["status"] != "healthy":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
            "compensations": backlog_health,
        },
    }
    return response, http_status
