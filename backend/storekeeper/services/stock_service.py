# Overview: Service-layer operations for stock; the only writer of Product.stock and its adjustment journal.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from ..enums import AdjustmentType, AdjustmentSource
from ..errors import DependentWriteFailure, InsufficientStock, NotFoundError, PartialUpdateFailure, ValidationError
from ..models import Product, Adjustment
from .document_store import store, Inc
"""
Stock Ledger Invariants (authoritative)

Counter:
- Product.stock is the authoritative on-hand counter per product.
- Only this module writes Product.stock (and Product.quantity for purchases).

Conditional writes:
- A decrement is ONE statement: stock = stock - q WHERE stock >= q.
  Zero rows touched means insufficient stock (or a missing/hidden product);
  there is no separate read-then-write window for a concurrent sale to use.
- before/after are taken from the row the UPDATE returned, never from an
  earlier read.

Journal:
- Every mutation is paired with exactly one Adjustment row
  (type, from, before, after, amount).
- The stock write happens first; if the journal write then fails the caller
  gets DependentWriteFailure carrying the movement, because the counter and
  the journal now disagree and only an operator can reconcile them.
- Journal rows are append-only; removing a cart line hides its rows
  (visible=False) instead of deleting them.
- Replaying visible rows in id order reproduces Product.stock for any
  product whose stock has only moved through this ledger.
"""


@dataclass
class StockMovement:
    product_id: int
    before: int
    after: int
    adjustment: Adjustment

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "before": self.before,
            "after": self.after,
            "adjustment_id": self.adjustment.id,
        }


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _visible_product(product_id: int, branch_id: int | None = None) -> Product:
    condition = {"id": product_id, "visible": True}
    if branch_id is not None:
        condition["branch_id"] = branch_id
    product = store.find_one(Product, condition)
    if product is None:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})
    return product


def _journal(
    *,
    product_id: int,
    category_id: int | None,
    branch_id: int,
    adjustment_type: AdjustmentType,
    source: AdjustmentSource,
    before: int,
    after: int,
    amount: int,
    user_id: int,
    description: str,
    sale_id: int | None,
    purchase_id: int | None,
) -> Adjustment:
    try:
        return store.create(
            Adjustment,
            branch_id=branch_id,
            product_id=product_id,
            category_id=category_id,
            sale_id=sale_id,
            purchase_id=purchase_id,
            type=adjustment_type,
            source=source,
            before_adjustment=before,
            after_adjustment=after,
            amount=amount,
            user_id=user_id,
            description=description,
        )
    except SQLAlchemyError as exc:
        raise DependentWriteFailure(
            "Stock was updated but its adjustment could not be recorded",
            details={
                "product_id": product_id,
                "type": adjustment_type.value,
                "before": before,
                "after": after,
                "amount": amount,
            },
        ) from exc


def decrement(
    product_id: int,
    quantity: int,
    *,
    branch_id: int,
    user_id: int,
    source: AdjustmentSource,
    description: str,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    also_quantity: bool = False,
) -> StockMovement:
    """Take ``quantity`` units out of stock in one conditional write, then journal it."""
    _check_quantity(quantity)

    patch = {"stock": Inc(-quantity), "updated_by": user_id}
    if also_quantity:
        patch["quantity"] = Inc(-quantity)

    row = store.find_one_and_update(
        Product,
        {"id": product_id, "branch_id": branch_id, "visible": True},
        patch,
        Product.stock >= quantity,
        returning=["stock", "category_id", "name"],
    )
    if row is None:
        product = _visible_product(product_id, branch_id)
        raise InsufficientStock(product.name, product.stock, quantity, product_id=product_id)

    after = row.stock
    before = after + quantity
    adjustment = _journal(
        product_id=product_id,
        category_id=row.category_id,
        branch_id=branch_id,
        adjustment_type=AdjustmentType.DECREASE,
        source=source,
        before=before,
        after=after,
        amount=quantity,
        user_id=user_id,
        description=description,
        sale_id=sale_id,
        purchase_id=purchase_id,
    )
    return StockMovement(product_id=product_id, before=before, after=after, adjustment=adjustment)


def increment(
    product_id: int,
    quantity: int,
    *,
    branch_id: int,
    user_id: int,
    source: AdjustmentSource,
    description: str,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    also_quantity: bool = False,
) -> StockMovement:
    """Put ``quantity`` units back into stock, then journal it."""
    _check_quantity(quantity)

    patch = {"stock": Inc(quantity), "updated_by": user_id}
    if also_quantity:
        patch["quantity"] = Inc(quantity)

    row = store.find_one_and_update(
        Product,
        {"id": product_id, "branch_id": branch_id, "visible": True},
        patch,
        returning=["stock", "category_id"],
    )
    if row is None:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})

    after = row.stock
    before = after - quantity
    adjustment = _journal(
        product_id=product_id,
        category_id=row.category_id,
        branch_id=branch_id,
        adjustment_type=AdjustmentType.INCREASE,
        source=source,
        before=before,
        after=after,
        amount=quantity,
        user_id=user_id,
        description=description,
        sale_id=sale_id,
        purchase_id=purchase_id,
    )
    return StockMovement(product_id=product_id, before=before, after=after, adjustment=adjustment)


def reserve(
    product_id: int,
    quantity: int,
    *,
    branch_id: int,
    user_id: int,
    sale_id: int | None = None,
    description: str = "Product stock decreased due to sale added to cart",
) -> StockMovement:
    """Reserve stock for a sale line. Fails with InsufficientStock when stock < quantity."""
    return decrement(
        product_id,
        quantity,
        branch_id=branch_id,
        user_id=user_id,
        source=AdjustmentSource.SALE_CART,
        description=description,
        sale_id=sale_id,
    )


def release(
    product_id: int,
    quantity: int,
    *,
    branch_id: int,
    user_id: int,
    sale_id: int | None = None,
    description: str = "Product stock increased due to sale removed from cart",
) -> StockMovement:
    """Undo a reservation."""
    return increment(
        product_id,
        quantity,
        branch_id=branch_id,
        user_id=user_id,
        source=AdjustmentSource.SALE_CART,
        description=description,
        sale_id=sale_id,
    )


def set_level(
    product_id: int,
    *,
    expected: int,
    target: int,
    branch_id: int,
    user_id: int,
    description: str | None = None,
) -> StockMovement | None:
    """
    Manual stock edit (from=user). The write only applies while stock still
    equals ``expected``; otherwise someone moved stock since the caller read it.
    """
    if isinstance(target, bool) or not isinstance(target, int) or target < 0:
        raise ValidationError("stock must be a non-negative integer")
    if target == expected:
        return None

    row = store.find_one_and_update(
        Product,
        {"id": product_id, "branch_id": branch_id, "stock": expected},
        {"stock": target, "updated_by": user_id},
        returning=["stock", "category_id"],
    )
    if row is None:
        product = store.find_one(Product, {"id": product_id})
        if product is None:
            raise NotFoundError("Product does not exist", details={"product_id": product_id})
        raise PartialUpdateFailure(
            f"Stock for product \"{product.name}\" changed concurrently (expected {expected}, found {product.stock})",
            expected=1,
            actual=0,
        )

    adjustment_type = AdjustmentType.INCREASE if target > expected else AdjustmentType.DECREASE
    verb = "increased" if adjustment_type == AdjustmentType.INCREASE else "decreased"
    adjustment = _journal(
        product_id=product_id,
        category_id=row.category_id,
        branch_id=branch_id,
        adjustment_type=adjustment_type,
        source=AdjustmentSource.USER,
        before=expected,
        after=target,
        amount=abs(target - expected),
        user_id=user_id,
        description=description or f"Stock has been manually {verb} due to product edit",
        sale_id=None,
        purchase_id=None,
    )
    return StockMovement(product_id=product_id, before=expected, after=target, adjustment=adjustment)


# ------------------------------------------------------------- adjustment journal

def list_adjustments(*, product_id: int, include_hidden: bool = False, limit: int | None = None) -> list[Adjustment]:
    condition = {"product_id": product_id}
    if not include_hidden:
        condition["visible"] = True
    return store.find(Adjustment, condition, newest_first=True, limit=limit)


def hide_adjustments(*, sale_id: int | None = None, purchase_id: int | None = None) -> int:
    """Flip visibility of the journal rows keyed to a sale or purchase; returns rows hidden."""
    if sale_id is None and purchase_id is None:
        raise ValidationError("sale_id or purchase_id is required")
    condition = {"visible": True}
    if sale_id is not None:
        condition["sale_id"] = sale_id
    if purchase_id is not None:
        condition["purchase_id"] = purchase_id
    return store.update_many(Adjustment, condition, {"visible": False})


def replay(product_id: int, opening: int = 0) -> int:
    """Stock level implied by the visible journal."""
    total = opening
    for adjustment in store.find(Adjustment, {"product_id": product_id, "visible": True}):
        total += adjustment.signed_amount
    return total


def verify_chain(product_id: int) -> list[dict]:
    """
    Return the breaks in the journal chain: consecutive rows where one
    row's before_adjustment does not equal the previous row's after_adjustment.

    Hidden rows stay in the chain; they were real movements.
    """
    breaks = []
    previous = None
    for adjustment in store.find(Adjustment, {"product_id": product_id}):
        if previous is not None and adjustment.before_adjustment != previous.after_adjustment:
            breaks.append({
                "adjustment_id": adjustment.id,
                "expected_before": previous.after_adjustment,
                "actual_before": adjustment.before_adjustment,
            })
        previous = adjustment
    return breaks


def stock_consistency(product: Product) -> dict:
    journal = replay(product.id)
    return {
        "product_id": product.id,
        "name": product.name,
        "stock": product.stock,
        "journal_stock": journal,
        "consistent": journal == product.stock,
        "chain_breaks": verify_chain(product.id),
    }
