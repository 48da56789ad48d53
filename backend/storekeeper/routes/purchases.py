# Overview: Flask API routes for purchases (stock intake from suppliers).

# backend/storekeeper/routes/purchases.py
from flask import Blueprint, jsonify

from ..decorators import json_payload
from ..services import engine


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("/")
@json_payload
def create_purchase_route(payload):
    """
    Receive stock.

    Body: product_id, quantity, buying_price_cents, selling_price_cents,
    total_amount_cents, paid_amount_cents, supplier_id, reference,
    description, date, branch_id, user_id.
    A total above the paid amount opens a creditor debt for the difference.
    """
    return jsonify(engine.create_purchase(payload))


@purchases_bp.post("/update")
@json_payload
def update_purchase_route(payload):
    """Edit purchase metadata, or hide it with visible=false (stock is taken back out)."""
    return jsonify(engine.update_purchase(payload))
