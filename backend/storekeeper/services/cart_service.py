# Overview: Service-layer operations for the sale cart; encapsulates business logic and database work.

"""
Sale Cart Manager

WHY: A cart line is the first moment a sale touches stock. Adding a line
reserves stock (and opens a debtor debt for credit sales); removing it must
give back exactly what was taken.

ORDER OF WRITES (add_to_cart):
1. Sale row (holds_stock=False)
2. StockLedger.reserve        -- only for cart/order lines that are not invoice quotes
3. Sale.holds_stock=True + stock_before/stock_after from the reservation
4. debtor Debt                -- only for credit sales that reserved stock
5. SaleAddedToCart event

ORDER OF WRITES (remove_from_cart):
1. Sale.holds_stock True -> False (conditional claim)
2. StockLedger.release        -- only when step 1 claimed a hold
3. drop debts (settlements reversed first)
4. hide the sale's adjustment rows
5. soft-delete the Sale (exactly one row)
6. detach it from its order; an order left without sales is deleted
7. SaleRemovedFromCart event
"""

from __future__ import annotations

from ..enums import SaleType, SaleStatus, DebtType, DebtSource, coerce_enum
from ..errors import InsufficientStock, NotFoundError, PartialDeleteFailure, PartialUpdateFailure, ValidationError
from ..models import Order, Product, Sale
from ..time_utils import day_label
from .document_store import store
from .events import dispatcher, EmptyOrderDeleted, SaleAddedToCart, SaleRemovedFromCart
from .saga import Saga
from . import debt_service, stock_service


RESERVING_TYPES = (SaleType.CART, SaleType.ORDER)


def _int_field(value, field: str, *, positive: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if positive and value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def sale_reserves_stock(sale_type: SaleType, status: SaleStatus) -> bool:
    return sale_type in RESERVING_TYPES and status != SaleStatus.INVOICE


def debt_description(product_name: str, created_at) -> str:
    return f"Debt created for sale of {product_name} on {day_label(created_at)}"


def mark_holding(sale_id: int, movement: stock_service.StockMovement, *, user_id: int) -> None:
    modified = store.update_one(
        Sale,
        {"id": sale_id},
        {
            "holds_stock": True,
            "stock_before": movement.before,
            "stock_after": movement.after,
            "updated_by": user_id,
        },
    )
    if modified != 1:
        raise PartialUpdateFailure(f"Failed to mark stock held for sale {sale_id}", expected=1, actual=modified)


def claim_hold(sale_id: int, *, user_id: int) -> bool:
    """
    Flip holds_stock True -> False in one conditional write. Returns True when
    this caller owns the release; a concurrent remover sees False.
    """
    modified = store.update_one(
        Sale,
        {"id": sale_id, "holds_stock": True},
        {"holds_stock": False, "updated_by": user_id},
    )
    return modified == 1


def restore_stock_hold(sale_id: int) -> int:
    return store.update_one(Sale, {"id": sale_id}, {"holds_stock": True})


def detach_from_order(sale: Sale, *, user_id: int) -> None:
    """Clear the sale's order_id; the order is deleted once no sale points at it."""
    order_id = sale.order_id
    modified = store.update_one(Sale, {"id": sale.id, "order_id": order_id}, {"order_id": None, "updated_by": user_id})
    if modified != 1:
        raise PartialUpdateFailure(f"Failed to detach sale {sale.id} from its order", expected=1, actual=modified)

    if store.count_documents(Sale, {"order_id": order_id}) == 0:
        order = store.find_one(Order, {"id": order_id})
        snapshot = order.to_dict(include_sales=False) if order is not None else {"id": order_id}
        deleted = store.delete_one(Order, {"id": order_id})
        if deleted != 1:
            raise PartialDeleteFailure(f"Failed to delete empty order {order_id}", expected=1, actual=deleted)
        dispatcher.dispatch(EmptyOrderDeleted(branch_id=sale.branch_id, user_id=user_id, data=snapshot))


def add_to_cart(
    *,
    product_id: int,
    quantity: int,
    selling_price_cents: int,
    sale_type,
    status,
    branch_id: int,
    user_id: int,
    number: str | int | None = None,
    customer_id: int | None = None,
    order_id: int | None = None,
) -> Sale:
    """
    Add one sale line.

    Raises:
        ValidationError: missing/invalid fields, credit sale without customer
        NotFoundError: product absent or hidden
        InsufficientStock: reservation rejected by the conditional decrement
    """
    _int_field(product_id, "product_id")
    _int_field(quantity, "quantity")
    _int_field(selling_price_cents, "selling_price_cents", positive=False)
    if selling_price_cents < 0:
        raise ValidationError("selling_price_cents must not be negative")
    sale_type = coerce_enum(SaleType, sale_type, "type")
    status = coerce_enum(SaleStatus, status, "status")
    if number is None or str(number).strip() == "":
        raise ValidationError("Missing required fields for adding to cart", details={"missing": ["number"]})
    if status == SaleStatus.CREDIT and customer_id is None:
        raise ValidationError("A credit sale requires a customer", details={"missing": ["customer_id"]})

    product = store.find_one(Product, {"id": product_id, "branch_id": branch_id, "visible": True})
    if product is None:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})

    reserves = sale_reserves_stock(sale_type, status)
    if reserves and product.stock < quantity:
        # Early answer for the common case; the conditional decrement stays authoritative.
        raise InsufficientStock(product.name, product.stock, quantity, product_id=product.id)

    with Saga("add_to_cart") as saga:
        sale = store.create(
            Sale,
            branch_id=branch_id,
            product_id=product.id,
            category_id=product.category_id,
            customer_id=customer_id,
            order_id=order_id,
            number=str(number),
            quantity=quantity,
            selling_price_cents=selling_price_cents,
            total_amount_cents=selling_price_cents * quantity,
            profit_cents=(selling_price_cents - product.buying_price_cents) * quantity,
            discount_cents=(product.selling_price_cents - selling_price_cents) * quantity,
            stock_before=product.stock,
            stock_after=product.stock - quantity,
            type=sale_type,
            status=status,
            holds_stock=False,
            created_by=user_id,
        )
        saga.arm("remove_from_cart", sale_id=sale.id, user_id=user_id)

        if reserves:
            movement = stock_service.reserve(
                product.id, quantity, branch_id=branch_id, user_id=user_id, sale_id=sale.id,
            )
            saga.arm(
                "release_stock",
                product_id=product.id,
                quantity=quantity,
                branch_id=branch_id,
                user_id=user_id,
                sale_id=sale.id,
            )
            mark_holding(sale.id, movement, user_id=user_id)
            saga.disarm("release_stock")

            if status == SaleStatus.CREDIT:
                debt_service.open_debt(
                    debt_type=DebtType.DEBTOR,
                    source_type=DebtSource.SALE,
                    source_id=sale.id,
                    total_amount_cents=sale.total_amount_cents,
                    branch_id=branch_id,
                    user_id=user_id,
                    customer_id=customer_id,
                    product_id=product.id,
                    description=debt_description(product.name, sale.created_at),
                )

        dispatcher.dispatch(SaleAddedToCart(branch_id=branch_id, user_id=user_id, data=sale.to_dict()))

    return sale


def remove_from_cart(sale_id: int, *, user_id: int) -> Sale:
    """
    Undo add_to_cart: release held stock, drop debts, hide the journal rows,
    soft-delete the line and take it out of its order.
    """
    _int_field(sale_id, "sale_id")
    sale = store.find_one(Sale, {"id": sale_id, "visible": True})
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})

    with Saga("remove_from_cart") as saga:
        if claim_hold(sale.id, user_id=user_id):
            saga.arm("restore_stock_hold", sale_id=sale.id)
            stock_service.release(
                sale.product_id, sale.quantity, branch_id=sale.branch_id, user_id=user_id, sale_id=sale.id,
            )
            saga.disarm("restore_stock_hold")

        debt_service.drop_debts(DebtSource.SALE, sale.id, user_id=user_id)
        stock_service.hide_adjustments(sale_id=sale.id)

        modified = store.update_one(
            Sale,
            {"id": sale.id, "visible": True},
            {"visible": False, "updated_by": user_id},
        )
        if modified != 1:
            raise PartialUpdateFailure("Failed to remove sale from cart", expected=1, actual=modified)

        if sale.order_id is not None:
            detach_from_order(sale, user_id=user_id)

        dispatcher.dispatch(SaleRemovedFromCart(branch_id=sale.branch_id, user_id=user_id, data=sale.to_dict()))

    return sale


def cart_list(condition: dict | None = None, *, limit: int | None = None) -> list[Sale]:
    """Visible sales matching ``condition`` (e.g. {"branch_id": 1, "type": "cart", "created_by": 3})."""
    condition = dict(condition or {})
    condition.setdefault("visible", True)
    return store.find(Sale, condition, newest_first=True, limit=limit)
