# Overview: Service-layer operations for purchases; receives stock from suppliers.

"""
Purchase Intake

WHY: A purchase is the only ordinary way stock enters a branch. It raises
Product.stock and Product.quantity, opens a creditor debt for whatever was
not paid up front and pushes the purchase prices onto the product.

LIFECYCLE:
1. created: stock increased (adjustment from=purchase), debt opened if total > paid
2. modified: metadata only (reference, description, supplier, date, prices)
3. hidden (visible=False): the compensating path; stock taken back out,
   debt and its settlements dropped. Prices pushed onto the product stay.

The stock taken back out on hide is whatever the journal still credits to
the purchase (sum of its visible adjustments), so hiding twice, or hiding a
purchase whose intake never reached the product, moves nothing extra.
"""

from __future__ import annotations

from datetime import datetime, timezone

from ..enums import AdjustmentSource, DebtType, DebtSource, PurchaseStatus
from ..errors import NotFoundError, PartialUpdateFailure, ValidationError
from ..models import Adjustment, Product, Purchase
from ..time_utils import day_label, utcnow, parse_iso_datetime
from .document_store import store
from .events import dispatcher, PurchaseCreated, PurchaseModified, PurchaseDeleted
from .saga import Saga
from . import debt_service, stock_service


# Fields a caller may change on an existing purchase
MUTABLE_FIELDS = {
    "supplier_id",
    "reference",
    "description",
    "date",
    "buying_price_cents",
    "selling_price_cents",
    "reorder_level",
}


def _parse_date(value) -> datetime:
    """Parse a purchase date to UTC-naive datetime."""
    if value is None:
        return utcnow()

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, str):
        dt = parse_iso_datetime(value)
        if dt is None:
            raise ValidationError("Invalid date format")
        return dt

    raise ValidationError("Invalid date format")


def _cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer amount in cents")
    return value


def purchase_debt_description(product_name: str, date: datetime) -> str:
    return f"Cause of debt: Purchase of {product_name} on {day_label(date)}"


def create_purchase(
    *,
    product_id: int,
    quantity: int,
    buying_price_cents: int,
    selling_price_cents: int,
    branch_id: int,
    user_id: int,
    total_amount_cents: int | None = None,
    paid_amount_cents: int | None = None,
    supplier_id: int | None = None,
    reorder_level: int | None = None,
    reference: str | None = None,
    description: str | None = None,
    date=None,
) -> Purchase:
    """
    Receive ``quantity`` units of a product.

    Order of writes:
    1. Purchase row
    2. creditor Debt for total - paid (when total > paid)
    3. StockLedger.increment of stock and quantity (from=purchase)
    4. product prices / reorder level
    5. PurchaseCreated event

    Raises:
        ValidationError: bad quantity or amounts, paid > total
        NotFoundError: product absent or hidden
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    _cents(buying_price_cents, "buying_price_cents")
    _cents(selling_price_cents, "selling_price_cents")
    if total_amount_cents is None:
        total_amount_cents = buying_price_cents * quantity
    _cents(total_amount_cents, "total_amount_cents")
    if paid_amount_cents is None:
        paid_amount_cents = total_amount_cents
    _cents(paid_amount_cents, "paid_amount_cents")
    if paid_amount_cents > total_amount_cents:
        raise ValidationError("Paid amount cannot exceed the purchase total")
    purchase_date = _parse_date(date)

    product = store.find_one(Product, {"id": product_id, "branch_id": branch_id, "visible": True})
    if product is None:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})

    with Saga("create_purchase") as saga:
        purchase = store.create(
            Purchase,
            branch_id=branch_id,
            product_id=product.id,
            supplier_id=supplier_id,
            category_id=product.category_id,
            quantity=quantity,
            buying_price_cents=buying_price_cents,
            selling_price_cents=selling_price_cents,
            reorder_level=reorder_level,
            stock_before=product.stock,
            stock_after=product.stock + quantity,
            total_amount_cents=total_amount_cents,
            paid_amount_cents=paid_amount_cents,
            status=PurchaseStatus.PAID if paid_amount_cents == total_amount_cents else PurchaseStatus.UNPAID,
            reference=reference,
            description=description,
            date=purchase_date,
            created_by=user_id,
        )
        saga.arm("hide_purchase", purchase_id=purchase.id, user_id=user_id)

        if total_amount_cents > paid_amount_cents:
            debt_service.open_debt(
                debt_type=DebtType.CREDITOR,
                source_type=DebtSource.PURCHASE,
                source_id=purchase.id,
                total_amount_cents=total_amount_cents - paid_amount_cents,
                branch_id=branch_id,
                user_id=user_id,
                supplier_id=supplier_id,
                product_id=product.id,
                description=purchase_debt_description(product.name, purchase_date),
            )

        movement = stock_service.increment(
            product.id,
            quantity,
            branch_id=branch_id,
            user_id=user_id,
            source=AdjustmentSource.PURCHASE,
            description="Product stock was increased because a new purchase was made",
            purchase_id=purchase.id,
            also_quantity=True,
        )
        if (movement.before, movement.after) != (purchase.stock_before, purchase.stock_after):
            # Another writer moved stock between our read and the increment.
            store.update_one(
                Purchase,
                {"id": purchase.id},
                {"stock_before": movement.before, "stock_after": movement.after},
            )

        pricing = {
            "buying_price_cents": buying_price_cents,
            "selling_price_cents": selling_price_cents,
            "updated_by": user_id,
        }
        if reorder_level is not None:
            pricing["reorder_level"] = reorder_level
        modified = store.update_one(Product, {"id": product.id}, pricing)
        if modified != 1:
            raise PartialUpdateFailure("Failed to update product prices", expected=1, actual=modified)

        dispatcher.dispatch(PurchaseCreated(branch_id=branch_id, user_id=user_id, data=purchase.to_dict()))

    return purchase


def credited_quantity(purchase_id: int) -> int:
    """Units the visible journal still attributes to a purchase."""
    return sum(
        adjustment.signed_amount
        for adjustment in store.find(Adjustment, {"purchase_id": purchase_id, "visible": True})
    )


def update_purchase(purchase_id: int, *, user_id: int, visible: bool = True, **fields) -> Purchase:
    """
    Modify a purchase. visible=False hides it and takes its stock back out.
    """
    if isinstance(purchase_id, bool) or not isinstance(purchase_id, int):
        raise ValidationError("Invalid purchase id")
    unknown = sorted(set(fields) - MUTABLE_FIELDS)
    if unknown:
        raise ValidationError("Unknown or read-only fields", details={"fields": unknown})

    purchase = store.find_one(Purchase, {"id": purchase_id, "visible": True})
    if purchase is None:
        raise NotFoundError("Purchase does not exist", details={"purchase_id": purchase_id})

    if visible:
        return _modify_purchase(purchase, user_id=user_id, fields=fields)
    return hide_purchase(purchase.id, user_id=user_id)


def _modify_purchase(purchase: Purchase, *, user_id: int, fields: dict) -> Purchase:
    patch = dict(fields)
    if "date" in patch:
        patch["date"] = _parse_date(patch["date"])
    for key in ("buying_price_cents", "selling_price_cents"):
        if key in patch:
            _cents(patch[key], key)
    patch["updated_by"] = user_id

    snapshot = purchase.to_dict()
    modified = store.update_one(Purchase, {"id": purchase.id, "visible": True}, patch)
    if modified != 1:
        raise PartialUpdateFailure("Failed to update purchase", expected=1, actual=modified)

    dispatcher.dispatch(PurchaseModified(branch_id=purchase.branch_id, user_id=user_id, data=snapshot))
    return purchase


def hide_purchase(purchase_id: int, *, user_id: int) -> Purchase:
    """
    Compensating path for a purchase.

    1. StockLedger.decrement of whatever the journal still credits (stock and quantity)
    2. hide the Purchase
    3. drop its creditor debt and settlements
    """
    purchase = store.find_one(Purchase, {"id": purchase_id})
    if purchase is None:
        raise NotFoundError("Purchase does not exist", details={"purchase_id": purchase_id})
    snapshot = purchase.to_dict()

    with Saga("hide_purchase") as saga:
        credited = credited_quantity(purchase.id)
        if credited > 0:
            stock_service.decrement(
                purchase.product_id,
                credited,
                branch_id=purchase.branch_id,
                user_id=user_id,
                source=AdjustmentSource.PURCHASE,
                description="Product stock was decreased because purchase was deleted",
                purchase_id=purchase.id,
                also_quantity=True,
            )
            saga.arm("hide_purchase", purchase_id=purchase.id, user_id=user_id)

        modified = store.update_one(Purchase, {"id": purchase.id}, {"visible": False, "updated_by": user_id})
        if modified != 1:
            raise PartialUpdateFailure("Failed to delete purchase", expected=1, actual=modified)

        debt_service.drop_debts(DebtSource.PURCHASE, purchase.id, user_id=user_id)

        dispatcher.dispatch(PurchaseDeleted(branch_id=purchase.branch_id, user_id=user_id, data=snapshot))

    return purchase
