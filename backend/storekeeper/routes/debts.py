# Overview: Flask API routes for debt settlements.

# backend/storekeeper/routes/debts.py
from flask import Blueprint, jsonify

from ..decorators import json_payload
from ..services import engine


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.post("/<int:debt_id>/settlements")
@json_payload
def settle_debt_route(debt_id: int, payload):
    """
    Record a payment against a debt.

    Body: total_amount_cents, fee_cents, account_id, reference, description, user_id.
    With an account the payment is also posted as a transaction on it.
    """
    return jsonify(engine.settle_debt({**payload, "debt_id": debt_id}))


@debts_bp.post("/settlements/<int:debt_history_id>/reverse")
@json_payload
def reverse_settlement_route(debt_history_id: int, payload):
    return jsonify(engine.reverse_debt_settlement({**payload, "debt_history_id": debt_history_id}))
