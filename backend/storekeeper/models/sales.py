from __future__ import annotations

from ..extensions import db
from ..enums import SaleType, SaleStatus, OrderType, OrderStatus
from storekeeper.time_utils import to_utc_z
from .common import enum_column, enum_value


class Sale(db.Model):
    """
    One sold line: a product, a quantity and the prices captured at cart time.

    LIFECYCLE (type):
    - cart: added to a cart, not yet grouped into an order
    - order: entered directly as an order line
    - sale: folded into an order / committed by an invoice
    - invoice: entered directly as an invoice line (never reserves stock)

    PAYMENT DISPOSITION (status): cash, credit (a debtor Debt exists), invoice
    (quote line, stock untouched until the invoice is confirmed).

    holds_stock is True while product stock is decremented on this sale's
    behalf. Every release path checks it, so stock that was never reserved
    is never credited back.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_type_created", "branch_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    category_id = db.Column(db.Integer, nullable=True)

    # Owning order once the sale is committed
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    number = db.Column(db.String(64), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    selling_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_before = db.Column(db.Integer, nullable=True)
    stock_after = db.Column(db.Integer, nullable=True)

    type = enum_column(SaleType, nullable=False, default=SaleType.CART, index=True)
    status = enum_column(SaleStatus, nullable=False, index=True)

    holds_stock = db.Column(db.Boolean, nullable=False, default=False)
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
            "customer_id": self.customer_id,
            "category_id": self.category_id,
            "order_id": self.order_id,
            "number": self.number,
            "quantity": self.quantity,
            "selling_price_cents": self.selling_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "profit_cents": self.profit_cents,
            "discount_cents": self.discount_cents,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "type": enum_value(self.type),
            "status": enum_value(self.status),
            "holds_stock": self.holds_stock,
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Order(db.Model):
    """
    A group of sales: a commercial order, a proforma invoice (quote) or an invoice.

    INVARIANT: a visible order owns at least one sale. The order is deleted
    when its last sale is removed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_branch_type_created", "branch_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    number = db.Column(db.String(64), nullable=True, index=True)
    reference = db.Column(db.String(128), nullable=True)

    type = enum_column(OrderType, nullable=False, index=True)
    status = enum_column(OrderStatus, nullable=False, index=True)

    is_printed = db.Column(db.Boolean, nullable=False, default=False)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    # True once an invoice's stock effect has been committed
    verified_sales = db.Column(db.Boolean, nullable=False, default=False)

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

    sales = db.relationship("Sale", backref=db.backref("order", lazy=True), lazy=True, order_by="Sale.id")

    @property
    def label(self) -> str:
        return {
            OrderType.PROFORMA: "Proforma invoice",
            OrderType.INVOICE: "Invoice",
        }.get(self.type, "Order")

    def to_dict(self, include_sales: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "number": self.number,
            "reference": self.reference,
            "type": enum_value(self.type),
            "status": enum_value(self.status),
            "is_printed": self.is_printed,
            "is_verified": self.is_verified,
            "verified_sales": self.verified_sales,
            "visible": self.visible,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_sales:
            data["sales"] = [sale.to_dict() for sale in self.sales]
        return data
