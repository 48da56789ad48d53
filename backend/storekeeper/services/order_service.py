# Overview: Service-layer operations for orders, proforma invoices and invoices; drives the order state machine.

from __future__ import annotations

from ..enums import (
    OrderType,
    OrderAction,
    SaleType,
    SaleStatus,
    DebtSource,
    SALE_TYPE_FOR_ORDER,
    INITIAL_ORDER_STATUS,
    coerce_enum,
    next_order_state,
)
from ..errors import (
    InsufficientStock,
    NotFoundError,
    PartialDeleteFailure,
    PartialUpdateFailure,
    ValidationError,
)
from ..models import Order, Product, Sale
from .document_store import store
from .events import (
    dispatcher,
    OrderCreated,
    ProformaConfirmed,
    InvoiceStockCommitted,
    OrderDeleted,
    SalesDeleted,
)
from .saga import Saga
from . import cart_service, debt_service, stock_service
"""
Order Lifecycle (authoritative)

States are (Order.type, Order.status); moves go through ORDER_TRANSITIONS:
- order/active       commercial sale; lines reserved at cart time keep their
                     hold, the rest (invoice quotes become cash) are reserved
                     when the order is created
- proforma/pending   quote; its sales stay type=cart and hold no stock
- proforma/pending --confirm--> invoice/done (is_verified=True), no stock change
- invoice/* --confirm--> same state with verified_sales=True: sales become
  sale/cash and every sale not already holding stock is reserved now

Validation happens before the first write of every operation. Writes after
that are checked by modified count and are not undone on failure; the saga
queues the compensation instead.

Release asymmetry:
- delete_order never releases stock (sales are only hidden).
- delete_sales releases stock only for non-invoice sales holding stock.
"""


def _id_list(ids, field: str = "sales") -> list[int]:
    if not isinstance(ids, (list, tuple)) or not ids:
        raise ValidationError("No sales have been provided" if field == "sales" else f"No {field} have been provided")
    for value in ids:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Invalid id in {field}: {value!r}")
    if len(set(ids)) != len(ids):
        raise ValidationError(f"Duplicate ids in {field}")
    return list(ids)


def _int_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Invalid {field}")
    return value


def _load_sales(sale_ids: list[int]) -> list[Sale]:
    sales = store.find(Sale, {"id": sale_ids, "visible": True})
    found = {sale.id for sale in sales}
    missing = [sale_id for sale_id in sale_ids if sale_id not in found]
    if missing:
        raise NotFoundError(f"Sale not found: {missing[0]}", details={"missing": missing})
    return sales


def _validate_stock(sales: list[Sale]) -> None:
    """
    Every sale that does not already hold stock must still be coverable by its
    product's stock. Quantities are summed per product so two lines cannot each
    pass against the same units.
    """
    required: dict[int, int] = {}
    for sale in sales:
        if sale.holds_stock:
            continue
        required[sale.product_id] = required.get(sale.product_id, 0) + sale.quantity
    if not required:
        return

    products = {p.id: p for p in store.find(Product, {"id": list(required)})}
    for product_id, quantity in required.items():
        product = products.get(product_id)
        if product is None:
            raise NotFoundError("Product not found for sale", details={"product_id": product_id})
        if product.stock < quantity:
            raise InsufficientStock(product.name, product.stock, quantity, product_id=product_id)


def _reject_owned(sales: list[Sale]) -> None:
    owner_ids = sorted({sale.order_id for sale in sales if sale.order_id is not None})
    if not owner_ids:
        return
    owners = store.find(Order, {"id": owner_ids, "visible": True}, projection=["id"])
    if owners:
        owned = [sale.id for sale in sales if sale.order_id in {o.id for o in owners}]
        raise ValidationError(
            "Some sales already belong to an order",
            details={"sales": owned, "orders": [o.id for o in owners]},
        )


def _reserve_unheld(sales: list[Sale], *, saga: Saga, user_id: int, description: str) -> None:
    """Reserve and mark every sale that does not hold stock yet, one at a time."""
    for sale in sales:
        if sale.holds_stock:
            continue
        movement = stock_service.reserve(
            sale.product_id,
            sale.quantity,
            branch_id=sale.branch_id,
            user_id=user_id,
            sale_id=sale.id,
            description=description,
        )
        saga.arm(
            "release_stock",
            product_id=sale.product_id,
            quantity=sale.quantity,
            branch_id=sale.branch_id,
            user_id=user_id,
            sale_id=sale.id,
        )
        cart_service.mark_holding(sale.id, movement, user_id=user_id)
        saga.disarm("release_stock")


# ----------------------------------------------------------------- creation

def create_order(
    *,
    sale_ids,
    branch_id: int,
    user_id: int,
    order_type=OrderType.ORDER,
    number: str | None = None,
    customer_id: int | None = None,
    reference: str | None = None,
    is_verified: bool = False,
    summary: str | None = None,
) -> Order:
    """
    Fold existing sales into a new Order.

    1. validate ids, type, ownership and stock (no writes yet)
    2. Order row
    3. one bulk update of the sales: type per SALE_TYPE_FOR_ORDER and order_id
       (modified count must equal the number of sales)
    4. type=order only: invoice quotes become cash lines and every sale not
       holding stock is reserved and marked
    5. OrderCreated event
    """
    sale_ids = _id_list(sale_ids)
    order_type = coerce_enum(OrderType, order_type, "type")

    sales = _load_sales(sale_ids)
    _reject_owned(sales)
    _validate_stock(sales)

    reserving = order_type == OrderType.ORDER
    quote_ids = [sale.id for sale in sales if reserving and not sale.holds_stock and sale.status == SaleStatus.INVOICE]

    with Saga("create_order") as saga:
        order = store.create(
            Order,
            branch_id=branch_id,
            customer_id=customer_id,
            number=str(number) if number is not None else None,
            reference=reference,
            type=order_type,
            status=INITIAL_ORDER_STATUS[order_type],
            is_printed=order_type == OrderType.INVOICE,
            is_verified=is_verified,
            verified_sales=False,
            created_by=user_id,
        )
        saga.arm(
            "discard_order",
            order_id=order.id,
            sale_types={str(sale.id): sale.type.value for sale in sales},
            sale_statuses={str(sale_id): SaleStatus.INVOICE.value for sale_id in quote_ids},
        )

        modified = store.update_many(
            Sale,
            {"id": sale_ids, "visible": True},
            {"type": SALE_TYPE_FOR_ORDER[order_type], "order_id": order.id, "updated_by": user_id},
        )
        if modified != len(sale_ids):
            raise PartialUpdateFailure("Failed to update sales status", expected=len(sale_ids), actual=modified)

        if reserving:
            if quote_ids:
                modified = store.update_many(
                    Sale,
                    {"id": quote_ids, "status": SaleStatus.INVOICE},
                    {"status": SaleStatus.CASH, "updated_by": user_id},
                )
                if modified != len(quote_ids):
                    raise PartialUpdateFailure("Failed to update quoted sales", expected=len(quote_ids), actual=modified)
            _reserve_unheld(
                sales,
                saga=saga,
                user_id=user_id,
                description="Product stock decreased due to order creation",
            )

        dispatcher.dispatch(OrderCreated(
            branch_id=branch_id,
            user_id=user_id,
            data=order.to_dict(),
            summary=summary or f"{order.label} has been created",
        ))

    return order


def derive_order_type(first_sale: Sale) -> OrderType:
    """A batch whose first line is an invoice quote becomes a proforma; anything else is an order."""
    return OrderType.PROFORMA if first_sale.status == SaleStatus.INVOICE else OrderType.ORDER


def save_sale(
    *,
    sale_ids,
    branch_id: int,
    user_id: int,
    number: str | None = None,
    customer_id: int | None = None,
    reference: str | None = None,
) -> Order:
    sale_ids = _id_list(sale_ids)
    first = store.find_one(Sale, {"id": sale_ids[0], "visible": True})
    if first is None:
        raise NotFoundError("First sale not found", details={"sale_id": sale_ids[0]})

    order_type = derive_order_type(first)
    noun = "proforma invoice" if order_type == OrderType.PROFORMA else "order"
    plural = "s have" if len(sale_ids) > 1 else " has"
    return create_order(
        sale_ids=sale_ids,
        branch_id=branch_id,
        user_id=user_id,
        order_type=order_type,
        number=number,
        customer_id=customer_id,
        reference=reference,
        is_verified=order_type != OrderType.PROFORMA,
        summary=f"Sale{plural} been saved and new {noun} has been created",
    )


# ----------------------------------------------------------------- queries

def get_orders_list(condition: dict | None = None, *, limit: int | None = None) -> list[Order]:
    return store.find(Order, dict(condition or {}), newest_first=True, limit=limit)


def _visible_order(order_id) -> Order:
    order = store.find_one(Order, {"id": _int_id(order_id, "order id"), "visible": True})
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


# ----------------------------------------------------------------- confirmation

def confirm(order_id: int, *, user_id: int) -> Order:
    """Confirm a proforma (-> invoice/done) or commit an invoice's stock."""
    order = _visible_order(order_id)
    if order.type == OrderType.PROFORMA:
        return _confirm_proforma(order, user_id=user_id)
    if order.type == OrderType.INVOICE:
        return _commit_invoice_stock(order, user_id=user_id)
    # Plain orders have no confirm transition; let the table say so.
    next_order_state(order.type, order.status, OrderAction.CONFIRM_PROFORMA)
    return order


def _confirm_proforma(order: Order, *, user_id: int) -> Order:
    new_type, new_status = next_order_state(order.type, order.status, OrderAction.CONFIRM_PROFORMA)
    modified = store.update_one(
        Order,
        {"id": order.id, "type": order.type, "status": order.status, "visible": True},
        {
            "type": new_type,
            "status": new_status,
            "is_printed": False,
            "is_verified": True,
            "updated_by": user_id,
        },
    )
    if modified != 1:
        raise PartialUpdateFailure(
            "Failed to update proforma invoice to regular invoice",
            expected=1,
            actual=modified,
        )
    dispatcher.dispatch(ProformaConfirmed(branch_id=order.branch_id, user_id=user_id, data=order.to_dict()))
    return order


def _commit_invoice_stock(order: Order, *, user_id: int) -> Order:
    """
    Deferred stock commit for an invoice.

    Sales flip to sale/cash first, then each sale not yet holding stock is
    reserved and marked. A failure part-way leaves the already reserved sales
    marked, so confirming again only reserves what is still missing.
    """
    next_order_state(order.type, order.status, OrderAction.COMMIT_INVOICE_STOCK)
    if order.verified_sales:
        raise ValidationError(
            "Invoice sales have already been verified",
            details={"order_id": order.id},
        )

    sales = store.find(Sale, {"order_id": order.id, "visible": True})
    if not sales:
        raise ValidationError("No sales associated with this invoice", details={"order_id": order.id})
    _validate_stock(sales)

    sale_ids = [sale.id for sale in sales]
    with Saga("confirm_invoice") as saga:
        modified = store.update_many(
            Sale,
            {"id": sale_ids},
            {"type": SaleType.SALE, "status": SaleStatus.CASH, "updated_by": user_id},
        )
        if modified != len(sale_ids):
            raise PartialUpdateFailure("Failed to update all related sales", expected=len(sale_ids), actual=modified)

        _reserve_unheld(
            sales,
            saga=saga,
            user_id=user_id,
            description="Product stock decreased due to invoice confirmation",
        )

        modified = store.update_one(
            Order,
            {"id": order.id, "verified_sales": False},
            {"verified_sales": True, "updated_by": user_id},
        )
        if modified != 1:
            raise PartialUpdateFailure("Failed to verify sales for invoice", expected=1, actual=modified)

        dispatcher.dispatch(InvoiceStockCommitted(branch_id=order.branch_id, user_id=user_id, data=order.to_dict()))

    return order


# ----------------------------------------------------------------- deletion

def delete_order(order_id: int, *, user_id: int) -> Order:
    """
    Soft-delete an order and hide its sales. Stock is never released here;
    proforma sales go back to type=cart.
    """
    order = _visible_order(order_id)
    snapshot = order.to_dict()

    modified = store.update_one(
        Order,
        {"id": order.id, "visible": True},
        {"visible": False, "updated_by": user_id},
    )
    if modified != 1:
        raise PartialUpdateFailure("Failed to delete order", expected=1, actual=modified)

    patch = {"visible": False, "updated_by": user_id}
    if order.type == OrderType.PROFORMA:
        patch["type"] = SaleType.CART
    expected = store.count_documents(Sale, {"order_id": order.id, "visible": True})
    modified = store.update_many(Sale, {"order_id": order.id, "visible": True}, patch)
    if modified != expected:
        raise PartialUpdateFailure("Failed to hide order sales", expected=expected, actual=modified)

    dispatcher.dispatch(OrderDeleted(
        branch_id=order.branch_id,
        user_id=user_id,
        data=snapshot,
        summary=f"{order.label} has been deleted",
    ))
    return order


def delete_sales(sale_ids, *, user_id: int) -> int:
    """
    Hard-delete sales.

    Every id is validated before the first write. Then per sale: release its
    stock when it is not an invoice line and holds stock, drop its debt when it
    was sold on credit, detach it from its order and delete the order once it
    has no sales left. Finally the sales are deleted in one statement whose
    count must match.
    """
    sale_ids = _id_list(sale_ids)
    sales = store.find(Sale, {"id": sale_ids})
    found = {sale.id for sale in sales}
    missing = [sale_id for sale_id in sale_ids if sale_id not in found]
    if missing:
        raise NotFoundError(f"Sale not found: {missing[0]}", details={"missing": missing})

    snapshots = [sale.to_dict() for sale in sales]
    with Saga("delete_sales") as saga:
        for sale in sales:
            if sale.type != SaleType.INVOICE and cart_service.claim_hold(sale.id, user_id=user_id):
                saga.arm("restore_stock_hold", sale_id=sale.id)
                stock_service.release(
                    sale.product_id,
                    sale.quantity,
                    branch_id=sale.branch_id,
                    user_id=user_id,
                    sale_id=sale.id,
                    description="Product stock increased due to sale deletion",
                )
                saga.disarm("restore_stock_hold")

            # Covers credit sales whose debt has since been settled (status flipped to cash).
            debt_service.drop_debts(DebtSource.SALE, sale.id, user_id=user_id)

            if sale.order_id is not None:
                cart_service.detach_from_order(sale, user_id=user_id)

        deleted = store.delete_many(Sale, {"id": sale_ids})
        if deleted != len(sale_ids):
            raise PartialDeleteFailure("Failed to delete all specified sales", expected=len(sale_ids), actual=deleted)

        dispatcher.dispatch(SalesDeleted(
            branch_id=snapshots[0]["branch_id"],
            user_id=user_id,
            data={"sales": snapshots},
            summary=f"{len(sale_ids)} sale(s) have been deleted",
        ))

    return deleted


# ----------------------------------------------------------------- compensations

def discard_order(order_id: int, sale_types: dict, sale_statuses: dict | None = None) -> int:
    """
    Undo a half-finished create_order: give the sales back their type (and
    their quote status while they still hold nothing) and drop the order.
    """
    for sale_id, sale_status in (sale_statuses or {}).items():
        store.update_one(
            Sale,
            {"id": int(sale_id), "order_id": order_id, "holds_stock": False},
            {"status": sale_status},
        )
    for sale_id, sale_type in sale_types.items():
        store.update_one(Sale, {"id": int(sale_id), "order_id": order_id}, {"type": sale_type, "order_id": None})
    return store.delete_one(Order, {"id": order_id})
