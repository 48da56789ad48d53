# Overview: Public engine facade; every operation takes a payload dict and returns a {success, message} envelope.

"""
Engine Facade

Each public function here is one failure boundary:
- the payload is validated against the model columns before any write
- the first failure aborts the remaining steps and becomes
  {"success": False, "message": ..., "details": ...}
- steps already committed are not undone here; the saga has queued their
  compensations for `flask engine compensate`

Nothing below raises. Domain errors keep their message and details, storage
errors and anything unexpected are logged with the traceback.
"""

from __future__ import annotations

from functools import wraps

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import EngineError, ValidationError
from ..extensions import db
from ..models import DebtHistory, Order, Product, Purchase, Sale, Transaction
from ..validation import (
    CART_POLICY,
    ORDER_POLICY,
    PRODUCT_CREATE_POLICY,
    PRODUCT_UPDATE_POLICY,
    PURCHASE_CREATE_POLICY,
    PURCHASE_UPDATE_POLICY,
    SAVE_SALE_POLICY,
    SETTLEMENT_POLICY,
    TRANSACTION_POLICY,
    acting_user,
    actor,
    document_id,
    enforce_amount_rules,
    enforce_positive,
    validate_payload,
)
from . import (
    account_service,
    cart_service,
    compensation_service,
    debt_service,
    order_service,
    product_service,
    purchase_service,
    stock_service,
)


def ok(message) -> dict:
    return {"success": True, "message": message}


def failure(message: str, details: dict | None = None) -> dict:
    body = {"success": False, "message": message}
    if details:
        body["details"] = details
    return body


def envelope(func):
    """Turn an engine operation into a {success, message} envelope that never raises."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except EngineError as exc:
            db.session.rollback()
            return failure(str(exc), exc.details)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Storage failure in %s", func.__name__)
            return failure("Storage failure, please try again")
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unexpected failure in %s", func.__name__)
            return failure("Internal server error")

    return wrapper


def _limit(payload: dict) -> int | None:
    value = payload.pop("limit", None)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("limit must be a positive integer")
    return value


def _filters(payload: dict, allowed: set[str]) -> dict:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError("Unknown filter fields", details={"fields": unknown})
    condition = {"visible": True}
    condition.update(payload)
    return condition


# ============================================================================
# ORDERS
# ============================================================================

ORDER_FILTERS = {"branch_id", "customer_id", "type", "status", "visible", "is_verified"}


@envelope
def create_order(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    data = validate_payload(model=Order, payload=rest, policy=ORDER_POLICY, partial=False)
    order = order_service.create_order(
        sale_ids=data["sales"],
        branch_id=branch_id,
        user_id=user_id,
        order_type=data.get("type") or "order",
        number=data.get("number"),
        customer_id=data.get("customer_id"),
        reference=data.get("reference"),
    )
    return ok(f"{order.label} has been created successfully")


@envelope
def get_orders_list(payload: dict | None = None) -> dict:
    condition = dict(payload or {})
    limit = _limit(condition)
    orders = order_service.get_orders_list(_filters(condition, ORDER_FILTERS), limit=limit)
    return ok([order.to_dict() for order in orders])


@envelope
def confirm_proforma_invoice(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    order = order_service.confirm(document_id(rest, "id", "order_id"), user_id=user_id)
    if order.verified_sales:
        return ok("Invoice sales and stock updated successfully")
    return ok("Proforma invoice updated successfully")


@envelope
def delete_order(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    order = order_service.delete_order(document_id(rest, "id", "order_id"), user_id=user_id)
    return ok(f"{order.label} deleted successfully")


# ============================================================================
# SALES
# ============================================================================

CART_FILTERS = {"branch_id", "product_id", "customer_id", "order_id", "type", "status", "visible", "created_by"}


@envelope
def add_to_cart(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    data = validate_payload(model=Sale, payload=rest, policy=CART_POLICY, partial=False)
    enforce_amount_rules(data)
    enforce_positive(data, "quantity")
    sale = cart_service.add_to_cart(
        product_id=data["product_id"],
        quantity=data["quantity"],
        selling_price_cents=data["selling_price_cents"],
        sale_type=data["type"],
        status=data["status"],
        branch_id=branch_id,
        user_id=user_id,
        number=data.get("number"),
        customer_id=data.get("customer_id"),
        order_id=data.get("order_id"),
    )
    return ok(sale.to_dict())


@envelope
def remove_from_cart(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    sale = cart_service.remove_from_cart(document_id(rest, "id", "sale_id"), user_id=user_id)
    return ok(sale.to_dict())


@envelope
def save_sale(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    data = validate_payload(model=Order, payload=rest, policy=SAVE_SALE_POLICY, partial=False)
    order = order_service.save_sale(
        sale_ids=data["sales"],
        branch_id=branch_id,
        user_id=user_id,
        number=data.get("number"),
        customer_id=data.get("customer_id"),
        reference=data.get("reference"),
    )
    return ok(f"{order.label} has been created successfully")


@envelope
def delete_sale(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    sale_ids = rest.get("sales")
    if sale_ids is None and rest.get("id") is not None:
        sale_ids = [rest["id"]]
    deleted = order_service.delete_sales(sale_ids, user_id=user_id)
    return ok(f"{deleted} sale(s) have been deleted")


@envelope
def cart_list(payload: dict | None = None) -> dict:
    condition = dict(payload or {})
    limit = _limit(condition)
    sales = cart_service.cart_list(_filters(condition, CART_FILTERS), limit=limit)
    return ok([sale.to_dict() for sale in sales])


# ============================================================================
# PURCHASES & PRODUCTS
# ============================================================================

@envelope
def create_purchase(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    data = validate_payload(model=Purchase, payload=rest, policy=PURCHASE_CREATE_POLICY, partial=False)
    enforce_amount_rules(data)
    enforce_positive(data, "quantity")
    purchase_service.create_purchase(branch_id=branch_id, user_id=user_id, **data)
    return ok("Purchase has been created")


@envelope
def update_purchase(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    purchase_id = document_id(rest, "id", "purchase_id")
    data = validate_payload(model=Purchase, payload=rest, policy=PURCHASE_UPDATE_POLICY, partial=True)
    enforce_amount_rules(data)
    visible = data.pop("visible", True)
    if visible is None:
        visible = True
    purchase_service.update_purchase(purchase_id, user_id=user_id, visible=visible, **data)
    return ok("Purchase has been updated" if visible else "Purchase has been deleted")


@envelope
def create_product(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    data = validate_payload(model=Product, payload=rest, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_amount_rules(data)
    product = product_service.create_product(
        branch_id=branch_id,
        user_id=user_id,
        **{key: value for key, value in data.items() if value is not None},
    )
    return ok(product.to_dict())


@envelope
def update_product(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    product_id = document_id(rest, "id", "product_id")
    data = validate_payload(model=Product, payload=rest, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_amount_rules(data)
    product_service.update_product(
        product_id,
        user_id=user_id,
        stock=data.pop("stock", None),
        old_stock=data.pop("old_stock", None),
        visible=data.pop("visible", None),
        restore=bool(data.pop("restore", False)),
        **data,
    )
    return ok("Product has been updated")


@envelope
def product_adjustments(payload: dict) -> dict:
    rest = dict(payload or {})
    product_id = document_id(rest, "id", "product_id")
    limit = _limit(rest)
    include_hidden = rest.pop("include_hidden", False) is True
    adjustments = stock_service.list_adjustments(product_id=product_id, include_hidden=include_hidden, limit=limit)
    return ok([adjustment.to_dict() for adjustment in adjustments])


# ============================================================================
# DEBTS & ACCOUNTS
# ============================================================================

@envelope
def settle_debt(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    debt_id = document_id(rest, "debt_id", "id")
    data = validate_payload(model=DebtHistory, payload=rest, policy=SETTLEMENT_POLICY, partial=False)
    enforce_amount_rules(data)
    history = debt_service.settle(
        debt_id,
        amount_cents=data["total_amount_cents"],
        user_id=user_id,
        fee_cents=data.get("fee_cents") or 0,
        account_id=data.get("account_id"),
        reference=data.get("reference"),
        description=data.get("description"),
    )
    return ok(history.to_dict())


@envelope
def reverse_debt_settlement(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    history = debt_service.reverse_settlement(document_id(rest, "debt_history_id", "id"), user_id=user_id)
    return ok(history.to_dict())


@envelope
def post_transaction(payload: dict) -> dict:
    rest, branch_id, user_id = actor(payload)
    account_id = document_id(rest, "account_id")
    data = validate_payload(model=Transaction, payload=rest, policy=TRANSACTION_POLICY, partial=False)
    enforce_amount_rules(data)
    transaction = account_service.post_transaction(
        account_id,
        branch_id=branch_id,
        user_id=user_id,
        transaction_type=data["type"],
        total_amount_cents=data["total_amount_cents"],
        fee_cents=data.get("fee_cents") or 0,
        account_to_impact_id=data.get("account_to_impact_id"),
        reference=data.get("reference"),
        description=data.get("description"),
        date=data.get("date"),
    )
    return ok(transaction.to_dict())


@envelope
def reverse_transaction(payload: dict) -> dict:
    rest, user_id = acting_user(payload)
    transaction = account_service.reverse_transaction(document_id(rest, "transaction_id", "id"), user_id=user_id)
    return ok(transaction.to_dict())


# ============================================================================
# MAINTENANCE
# ============================================================================

@envelope
def run_compensations(payload: dict | None = None) -> dict:
    options = dict(payload or {})
    limit = _limit(options)
    return ok(compensation_service.run_pending_compensations(limit=limit))


@envelope
def reconcile_stock(payload: dict | None = None) -> dict:
    options = dict(payload or {})
    branch_id = options.get("branch_id")
    if branch_id is not None and (isinstance(branch_id, bool) or not isinstance(branch_id, int)):
        raise ValidationError("branch_id must be an integer")
    return ok(compensation_service.reconcile_stock(branch_id=branch_id))
