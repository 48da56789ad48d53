from __future__ import annotations

from ..extensions import db
from storekeeper.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and the authoritative stock counter.

    BRANCH SCOPING: products belong to one branch. Branches, categories and
    users are owned by external reference-data services and are referenced
    by plain integer ids.

    COUNTERS:
    - stock: units currently available. Only StockLedger writes it, always
      through a conditional UPDATE paired with an Adjustment row.
    - quantity: cumulative units ever received through purchases.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_visible", "branch_id", "visible"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    category_id = db.Column(db.Integer, nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents (frontend may only format for display)
    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    visible = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} branch_id={self.branch_id}>"

    @property
    def needs_reorder(self) -> bool:
        return self.stock <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "category_id": self.category_id,
            "name": self.name,
            "stock": self.stock,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "needs_reorder": self.needs_reorder,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
