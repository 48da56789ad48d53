# Overview: Flask API routes for account transactions.

# backend/storekeeper/routes/accounts.py
from flask import Blueprint, jsonify

from ..decorators import json_payload
from ..services import engine


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("/<int:account_id>/transactions")
@json_payload
def post_transaction_route(account_id: int, payload):
    """
    Post a deposit or withdraw on an account.

    Body: type, total_amount_cents, fee_cents, account_to_impact_id,
    reference, description, date, branch_id, user_id.
    """
    return jsonify(engine.post_transaction({**payload, "account_id": account_id}))


@accounts_bp.post("/transactions/<int:transaction_id>/reverse")
@json_payload
def reverse_transaction_route(transaction_id: int, payload):
    """Reverse a transaction by applying the negation of its recorded deltas."""
    return jsonify(engine.reverse_transaction({**payload, "transaction_id": transaction_id}))
