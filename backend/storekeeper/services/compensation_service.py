# Overview: Replays queued compensations and sweeps stock counters against the adjustment journal.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..enums import CompensationStatus
from ..errors import EngineError
from ..extensions import db
from ..models import PendingCompensation, Product
from ..time_utils import utcnow
from .document_store import store
from . import (
    account_service,
    cart_service,
    debt_service,
    order_service,
    product_service,
    purchase_service,
    stock_service,
)


def _release_stock(product_id, quantity, branch_id, user_id, sale_id=None):
    return stock_service.release(product_id, quantity, branch_id=branch_id, user_id=user_id, sale_id=sale_id)


# Name -> callable(**payload). Names are what Saga.arm() records.
COMPENSATIONS = {
    "remove_from_cart": lambda sale_id, user_id: cart_service.remove_from_cart(sale_id, user_id=user_id),
    "release_stock": _release_stock,
    "restore_stock_hold": cart_service.restore_stock_hold,
    "discard_order": order_service.discard_order,
    "hide_purchase": lambda purchase_id, user_id: purchase_service.hide_purchase(purchase_id, user_id=user_id),
    "hide_product": product_service.hide_product,
    "revert_debt_payment": lambda debt_id, amount_cents: debt_service.revert_payment(debt_id, amount_cents),
    "reapply_debt_payment": lambda debt_id, amount_cents: debt_service.apply_payment(debt_id, amount_cents),
    "discard_debt_history": debt_service.discard_debt_history,
    "restore_debt_history": debt_service.restore_debt_history,
    "discard_transaction": account_service.discard_transaction,
    "restore_transaction": account_service.restore_transaction,
    "revert_balance": account_service.revert_balance,
}


def pending_compensations(limit: int | None = None) -> list[PendingCompensation]:
    return store.find(PendingCompensation, {"status": CompensationStatus.PENDING}, limit=limit)


def run_pending_compensations(*, limit: int | None = None, max_attempts: int | None = None) -> dict:
    """
    Replay queued compensations oldest first.

    A compensation that raises an EngineError or a storage error stays pending
    with its attempt count bumped; after ``max_attempts`` it is marked failed
    and left for an operator.
    """
    if max_attempts is None:
        max_attempts = current_app.config.get("COMPENSATION_MAX_ATTEMPTS", 5)

    summary = {"done": 0, "failed": 0, "retrying": 0, "results": []}
    for entry in pending_compensations(limit=limit):
        entry_id = entry.id
        name = entry.compensation
        payload = dict(entry.payload or {})

        handler = COMPENSATIONS.get(name)
        if handler is None:
            _finish(entry_id, CompensationStatus.FAILED, error=f"Unknown compensation: {name}")
            summary["failed"] += 1
            summary["results"].append({"id": entry_id, "compensation": name, "status": "failed"})
            continue

        try:
            handler(**payload)
        except (EngineError, SQLAlchemyError, TypeError) as exc:
            db.session.rollback()
            attempts = entry.attempts + 1
            status = CompensationStatus.FAILED if attempts >= max_attempts else CompensationStatus.PENDING
            _finish(entry_id, status, error=str(exc), attempts=attempts)
            current_app.logger.warning("Compensation %s #%s failed (attempt %s): %s", name, entry_id, attempts, exc)
            key = "failed" if status == CompensationStatus.FAILED else "retrying"
            summary[key] += 1
            summary["results"].append({"id": entry_id, "compensation": name, "status": status.value, "error": str(exc)})
            continue

        _finish(entry_id, CompensationStatus.DONE, attempts=entry.attempts + 1)
        summary["done"] += 1
        summary["results"].append({"id": entry_id, "compensation": name, "status": "done"})

    return summary


def _finish(entry_id: int, status: CompensationStatus, *, error: str | None = None, attempts: int | None = None) -> None:
    patch = {"status": status, "last_error": error[:255] if error else None}
    if attempts is not None:
        patch["attempts"] = attempts
    if status != CompensationStatus.PENDING:
        patch["resolved_at"] = utcnow()
    store.update_one(PendingCompensation, {"id": entry_id}, patch)


def reconcile_stock(*, branch_id: int | None = None) -> dict:
    """
    Compare every visible product's stock with its journal replay.

    Read-only: drift is reported (and logged), never corrected here, because
    the right correction depends on which of the two writes was lost.
    """
    condition = {"visible": True}
    if branch_id is not None:
        condition["branch_id"] = branch_id

    checked = 0
    drift = []
    for product in store.find(Product, condition):
        checked += 1
        report = stock_service.stock_consistency(product)
        if not report["consistent"] or report["chain_breaks"]:
            drift.append(report)
            current_app.logger.warning(
                "Stock drift on product %s (%s): stock=%s journal=%s breaks=%s",
                product.id, product.name, report["stock"], report["journal_stock"], len(report["chain_breaks"]),
            )
    return {"checked": checked, "drifted": len(drift), "drift": drift}
