# Overview: Flask API routes for products and their stock adjustment journal.

# backend/storekeeper/routes/products.py
from flask import Blueprint, jsonify

from ..decorators import json_payload, query_filters
from ..services import engine


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/")
@json_payload
def create_product_route(payload):
    """Create a product; an opening stock is received as a paid purchase."""
    return jsonify(engine.create_product(payload))


@products_bp.post("/update")
@json_payload
def update_product_route(payload):
    """
    Edit a product.

    Body: id, user_id and any of name, category_id, prices, reorder_level,
    stock (with old_stock, the level the edit was based on), visible, restore.
    """
    return jsonify(engine.update_product(payload))


@products_bp.get("/<int:product_id>/adjustments")
@query_filters(int_fields=("limit",), bool_fields=("include_hidden",))
def product_adjustments_route(product_id: int, filters):
    """Stock adjustment journal for a product, newest first."""
    return jsonify(engine.product_adjustments({**filters, "product_id": product_id}))
