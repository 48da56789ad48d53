# Overview: Flask API routes for orders, proforma invoices and invoices.

# backend/storekeeper/routes/orders.py
"""Order API routes. Every response is a {success, message} envelope."""

from flask import Blueprint, jsonify

from ..decorators import json_payload, query_filters
from ..services import engine


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/")
@query_filters(int_fields=("branch_id", "customer_id", "limit"), bool_fields=("visible", "is_verified"))
def list_orders_route(filters):
    """List orders with their sales, newest first."""
    return jsonify(engine.get_orders_list(filters))


@orders_bp.post("/")
@json_payload
def create_order_route(payload):
    """
    Create an order from existing sales.

    Body: sales (list of sale ids), type (order|proforma|invoice), number,
    customer_id, reference, branch_id, user_id.
    Fails with no change when any product lacks the stock its sales need.
    """
    return jsonify(engine.create_order(payload))


@orders_bp.post("/confirm")
@json_payload
def confirm_order_route(payload):
    """
    Confirm a proforma invoice (it becomes an invoice) or commit an
    invoice's stock (its sales become cash sales).
    """
    return jsonify(engine.confirm_proforma_invoice(payload))


@orders_bp.post("/delete")
@json_payload
def delete_order_route(payload):
    return jsonify(engine.delete_order(payload))
