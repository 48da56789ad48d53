from __future__ import annotations

from ..extensions import db
from ..enums import (
    AdjustmentType,
    AdjustmentSource,
    DebtType,
    DebtStatus,
    DebtSource,
    AccountType,
    TransactionType,
    TransactionCause,
)
from storekeeper.time_utils import to_utc_z
from .common import enum_column, enum_value


class Adjustment(db.Model):
    """
    Journal entry paired with every Product.stock mutation.

    Append-only: rows are never updated except for the visibility flag, so
    replaying visible rows in id order reproduces the stock counter.
    """
    __tablename__ = "adjustments"
    __table_args__ = (
        db.Index("ix_adjustments_product_id_id", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, nullable=True)

    # What caused the movement
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    purchase_id = db.Column(db.Integer, nullable=True, index=True)

    type = enum_column(AdjustmentType, nullable=False, index=True)
    source = enum_column(AdjustmentSource, nullable=False, index=True)

    before_adjustment = db.Column(db.Integer, nullable=False)
    after_adjustment = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(255), nullable=False)
    user_id = db.Column(db.Integer, nullable=False)

    visible = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def signed_amount(self) -> int:
        return self.amount if self.type == AdjustmentType.INCREASE else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "category_id": self.category_id,
            "sale_id": self.sale_id,
            "purchase_id": self.purchase_id,
            "type": enum_value(self.type),
            "from": enum_value(self.source),
            "before_adjustment": self.before_adjustment,
            "after_adjustment": self.after_adjustment,
            "amount": self.amount,
            "description": self.description,
            "user_id": self.user_id,
            "visible": self.visible,
            "created_at": to_utc_z(self.created_at),
        }


class Debt(db.Model):
    """
    Amount owed by a customer (debtor) or to a supplier (creditor).

    INVARIANTS:
    - paid_amount_cents <= total_amount_cents
    - status == paid  <=>  paid_amount_cents == total_amount_cents
    - exactly one source document (source_type, source_id)

    Only DebtLedger writes paid_amount_cents/status.
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.Index("ix_debts_source", "source_type", "source_id"),
        db.CheckConstraint("paid_amount_cents <= total_amount_cents", name="ck_debts_paid_le_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    type = enum_column(DebtType, nullable=False, index=True)
    status = enum_column(DebtStatus, nullable=False, default=DebtStatus.UNPAID, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    source_type = enum_column(DebtSource, nullable=False)
    source_id = db.Column(db.Integer, nullable=False)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    supplier_id = db.Column(db.Integer, nullable=True, index=True)
    product_id = db.Column(db.Integer, nullable=True, index=True)

    description = db.Column(db.String(255), nullable=True)
    visible = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def outstanding_cents(self) -> int:
        return self.total_amount_cents - self.paid_amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "type": enum_value(self.type),
            "status": enum_value(self.status),
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "outstanding_cents": self.outstanding_cents,
            "source_type": enum_value(self.source_type),
            "source_id": self.source_id,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "product_id": self.product_id,
            "description": self.description,
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
        }


class DebtHistory(db.Model):
    """One settlement event against a debt. Hidden (visible=False) when reversed."""
    __tablename__ = "debt_histories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    fee_cents = db.Column(db.Integer, nullable=False, default=0)

    # Settlement paid into / out of this account, if any
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    reference = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    visible = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    debt = db.relationship("Debt", backref=db.backref("histories", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "debt_id": self.debt_id,
            "branch_id": self.branch_id,
            "total_amount_cents": self.total_amount_cents,
            "fee_cents": self.fee_cents,
            "account_id": self.account_id,
            "reference": self.reference,
            "description": self.description,
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
        }


class Account(db.Model):
    """Financial account. balance_cents changes only through Transaction posting/reversal."""
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    number = db.Column(db.String(64), nullable=True)
    provider = db.Column(db.String(64), nullable=False, default="cash")
    type = enum_column(AccountType, nullable=False, default=AccountType.CASH)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    disabled = db.Column(db.Boolean, nullable=False, default=False)
    visible = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "number": self.number,
            "provider": self.provider,
            "type": enum_value(self.type),
            "balance_cents": self.balance_cents,
            "disabled": self.disabled,
            "visible": self.visible,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Ledger entry paired with every Account.balance_cents mutation.

    balance_delta_cents / impact_delta_cents are the exact amounts applied at
    posting time; reversal applies their negation.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_branch_number", "branch_id", "number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    number = db.Column(db.String(32), nullable=False)

    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    account_type = enum_column(AccountType, nullable=False)
    account_to_impact_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    impact = db.Column(db.Boolean, nullable=False, default=False)

    type = enum_column(TransactionType, nullable=False, index=True)
    cause = enum_column(TransactionCause, nullable=False, default=TransactionCause.MANUAL)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    fee_cents = db.Column(db.Integer, nullable=False, default=0)

    balance_delta_cents = db.Column(db.Integer, nullable=False)
    impact_delta_cents = db.Column(db.Integer, nullable=False, default=0)

    debt_history_id = db.Column(db.Integer, db.ForeignKey("debt_histories.id", ondelete="SET NULL"), nullable=True, index=True)

    reference = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    visible = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "number": self.number,
            "account_id": self.account_id,
            "account_type": enum_value(self.account_type),
            "account_to_impact_id": self.account_to_impact_id,
            "impact": self.impact,
            "type": enum_value(self.type),
            "cause": enum_value(self.cause),
            "total_amount_cents": self.total_amount_cents,
            "fee_cents": self.fee_cents,
            "balance_delta_cents": self.balance_delta_cents,
            "impact_delta_cents": self.impact_delta_cents,
            "debt_history_id": self.debt_history_id,
            "reference": self.reference,
            "description": self.description,
            "date": to_utc_z(self.date),
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
        }
