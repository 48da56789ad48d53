# backend/storekeeper/services/product_service.py
"""
Product Catalog

Products carry the stock counter, so creating and editing them belong to the
engine rather than plain CRUD:
- create_product with an opening stock receives it as a fully paid purchase
- update_product with a new stock level goes through StockLedger.set_level
- hiding a product hides its sales and purchases; restoring brings back its
  purchases. The adjustment journal is never hidden by product visibility.
"""
from __future__ import annotations

from ..errors import NotFoundError, PartialUpdateFailure, ValidationError
from ..models import Product, Purchase, Sale
from .document_store import store
from .events import dispatcher, ProductCreated, ProductModified, ProductDeleted, ProductRestored
from .saga import Saga
from . import purchase_service, stock_service

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category_id",
    "buying_price_cents",
    "selling_price_cents",
    "reorder_level",
}


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


def product_patch(fields: dict) -> dict:
    patch = {}
    for key, value in fields.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        if key == "name":
            if not isinstance(value, str) or not value.strip():
                raise ValidationError("name must be a non-empty string")
            value = value.strip()
        elif key != "category_id":
            _non_negative_int(value, key)
        patch[key] = value
    return patch


def create_product(
    *,
    name: str,
    branch_id: int,
    user_id: int,
    stock: int = 0,
    buying_price_cents: int = 0,
    selling_price_cents: int = 0,
    reorder_level: int = 0,
    category_id: int | None = None,
) -> Product:
    """
    Create a product. An opening stock is received through a purchase paid in
    full (total = paid = stock * buying price), so the journal starts at zero.
    """
    fields = product_patch({
        "name": name,
        "buying_price_cents": buying_price_cents,
        "selling_price_cents": selling_price_cents,
        "reorder_level": reorder_level,
        "category_id": category_id,
    })
    _non_negative_int(stock, "stock")

    with Saga("create_product") as saga:
        product = store.create(
            Product,
            branch_id=branch_id,
            stock=0,
            quantity=0,
            created_by=user_id,
            **fields,
        )
        saga.arm("hide_product", product_id=product.id, user_id=user_id)

        if stock > 0:
            amount = stock * fields["buying_price_cents"]
            purchase_service.create_purchase(
                product_id=product.id,
                quantity=stock,
                buying_price_cents=fields["buying_price_cents"],
                selling_price_cents=fields["selling_price_cents"],
                branch_id=branch_id,
                user_id=user_id,
                total_amount_cents=amount,
                paid_amount_cents=amount,
                reorder_level=fields["reorder_level"],
                description="Opening stock",
            )

        dispatcher.dispatch(ProductCreated(branch_id=branch_id, user_id=user_id, data=product.to_dict()))

    return product


def update_product(
    product_id: int,
    *,
    user_id: int,
    stock: int | None = None,
    old_stock: int | None = None,
    visible: bool | None = None,
    restore: bool = False,
    **fields,
) -> Product:
    """
    Edit a product.

    Order of writes:
    1. field patch
    2. backfill of a zero-amount opening purchase once a buying price is known
    3. manual stock level (conditional on the stock the caller saw)
    4. visibility cascade to sales and purchases
    5. ProductModified / ProductDeleted / ProductRestored event

    ``old_stock`` is the level the caller based its edit on; it defaults to the
    current stock.
    """
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError("Invalid product id")
    unknown = sorted(set(fields) - PRODUCT_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError("Unknown or read-only fields", details={"fields": unknown})
    patch = product_patch(fields)
    if stock is not None:
        _non_negative_int(stock, "stock")

    product = store.find_one(Product, {"id": product_id})
    if product is None:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})
    if not product.visible and not restore:
        raise NotFoundError("Product does not exist", details={"product_id": product_id})

    snapshot = product.to_dict()
    hiding = visible is False and not restore

    if patch:
        patch["updated_by"] = user_id
        modified = store.update_one(Product, {"id": product.id}, patch)
        if modified != 1:
            raise PartialUpdateFailure("Failed to update product", expected=1, actual=modified)

    if patch.get("buying_price_cents", 0) > 0 and not hiding:
        _backfill_opening_purchase(product.id, patch["buying_price_cents"], user_id=user_id)

    if restore:
        _cascade_visibility(product.id, True, user_id=user_id)

    if stock is not None:
        expected = snapshot["stock"] if old_stock is None else old_stock
        stock_service.set_level(
            product.id,
            expected=expected,
            target=stock,
            branch_id=product.branch_id,
            user_id=user_id,
        )

    if hiding:
        _cascade_visibility(product.id, False, user_id=user_id)

    if hiding:
        event = ProductDeleted
    elif restore:
        event = ProductRestored
    else:
        event = ProductModified
    dispatcher.dispatch(event(branch_id=product.branch_id, user_id=user_id, data=snapshot))
    return product


def _backfill_opening_purchase(product_id: int, buying_price_cents: int, *, user_id: int) -> None:
    purchase = store.find_one(
        Purchase,
        {"product_id": product_id, "total_amount_cents": 0, "paid_amount_cents": 0, "visible": True},
    )
    if purchase is None:
        return
    amount = buying_price_cents * purchase.quantity
    modified = store.update_one(
        Purchase,
        {"id": purchase.id, "total_amount_cents": 0},
        {
            "buying_price_cents": buying_price_cents,
            "total_amount_cents": amount,
            "paid_amount_cents": amount,
            "updated_by": user_id,
        },
    )
    if modified != 1:
        raise PartialUpdateFailure("Failed to update product purchase", expected=1, actual=modified)


def _cascade_visibility(product_id: int, visible: bool, *, user_id: int) -> None:
    modified = store.update_one(Product, {"id": product_id}, {"visible": visible, "updated_by": user_id})
    if modified != 1:
        raise PartialUpdateFailure("Failed to update product visibility", expected=1, actual=modified)

    if not visible:
        store.update_many(Purchase, {"product_id": product_id, "visible": True}, {"visible": False, "updated_by": user_id})
        # Removed cart lines are indistinguishable from cascaded ones, so sales are not restored.
        store.update_many(Sale, {"product_id": product_id, "visible": True}, {"visible": False, "updated_by": user_id})
        return

    # Purchases deleted on their own had their stock taken back out; only the
    # ones the journal still credits were hidden by the product.
    for purchase in store.find(Purchase, {"product_id": product_id, "visible": False}, projection=["id"]):
        if purchase_service.credited_quantity(purchase.id) > 0:
            store.update_one(Purchase, {"id": purchase.id}, {"visible": True, "updated_by": user_id})


def hide_product(product_id: int, user_id: int) -> Product:
    return update_product(product_id, user_id=user_id, visible=False)
