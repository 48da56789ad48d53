from __future__ import annotations

from ..extensions import db
from ..enums import PurchaseStatus
from storekeeper.time_utils import to_utc_z
from .common import enum_column, enum_value


class Purchase(db.Model):
    """
    Incoming stock from a supplier.

    Creating a purchase increases Product.stock and Product.quantity; hiding it
    (visible=False) is the compensating path that takes the stock back out and
    drops the creditor debt. Prices pushed onto the product are not restored.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, nullable=True, index=True)
    category_id = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    buying_price_cents = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    reorder_level = db.Column(db.Integer, nullable=True)

    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = enum_column(PurchaseStatus, nullable=False, default=PurchaseStatus.PAID, index=True)

    reference = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    visible = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.Integer, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "category_id": self.category_id,
            "quantity": self.quantity,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "reorder_level": self.reorder_level,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "status": enum_value(self.status),
            "reference": self.reference,
            "description": self.description,
            "date": to_utc_z(self.date),
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
