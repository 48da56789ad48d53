# Overview: Flask API routes for cart lines and sales; parses input and returns engine envelopes.

# backend/storekeeper/routes/sales.py
"""Sales API routes. Every response is a {success, message} envelope."""

from flask import Blueprint, jsonify

from ..decorators import json_payload, query_filters
from ..services import engine


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/cart")
@query_filters(int_fields=("branch_id", "product_id", "customer_id", "order_id", "created_by", "limit"),
               bool_fields=("visible",))
def cart_list_route(filters):
    """List visible sales, newest first. Filters: branch_id, type, status, product_id, ..."""
    return jsonify(engine.cart_list(filters))


@sales_bp.post("/cart")
@json_payload
def add_to_cart_route(payload):
    """
    Add a product line to a cart.

    Body: product_id, quantity, selling_price_cents, type, status, number,
    customer_id (credit only), branch_id, user_id.
    Cart and order lines reserve stock immediately; invoice lines do not.
    """
    return jsonify(engine.add_to_cart(payload))


@sales_bp.post("/cart/remove")
@json_payload
def remove_from_cart_route(payload):
    """Remove a cart line, releasing its stock and dropping its debt."""
    return jsonify(engine.remove_from_cart(payload))


@sales_bp.post("/save")
@json_payload
def save_sale_route(payload):
    """Fold cart lines into a new order (or proforma invoice for invoice lines)."""
    return jsonify(engine.save_sale(payload))


@sales_bp.post("/delete")
@json_payload
def delete_sale_route(payload):
    return jsonify(engine.delete_sale(payload))
