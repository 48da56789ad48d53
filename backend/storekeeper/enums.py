# Overview: Closed value sets for document types and statuses, and the order state machine.

from __future__ import annotations

import enum

from .errors import ValidationError


class SaleType(str, enum.Enum):
    CART = "cart"
    ORDER = "order"
    SALE = "sale"
    INVOICE = "invoice"


class SaleStatus(str, enum.Enum):
    CASH = "cash"
    CREDIT = "credit"
    INVOICE = "invoice"


class OrderType(str, enum.Enum):
    ORDER = "order"
    PROFORMA = "proforma"
    INVOICE = "invoice"


class OrderStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING = "pending"
    DONE = "done"


class OrderAction(str, enum.Enum):
    CONFIRM_PROFORMA = "confirm_proforma"
    COMMIT_INVOICE_STOCK = "commit_invoice_stock"


class DebtType(str, enum.Enum):
    DEBTOR = "debtor"
    CREDITOR = "creditor"


class DebtStatus(str, enum.Enum):
    PAID = "paid"
    UNPAID = "unpaid"


class DebtSource(str, enum.Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"
    QUOTATION_INVOICE = "quotation_invoice"
    TRUCK_ORDER = "truck_order"


class PurchaseStatus(str, enum.Enum):
    PAID = "paid"
    UNPAID = "unpaid"


class AdjustmentType(str, enum.Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class AdjustmentSource(str, enum.Enum):
    SALE_CART = "sale_cart"
    PURCHASE = "purchase"
    SERVICE = "service"
    REQUEST = "request"
    USER = "user"


class AccountType(str, enum.Enum):
    CASH = "cash"
    BANK = "bank"
    MOBILE = "mobile"
    SUPPLIER = "supplier"


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class TransactionCause(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class ActivityType(str, enum.Enum):
    CREATION = "creation"
    MODIFICATION = "modification"
    DELETION = "deletion"
    RESTORATION = "restoration"


class CompensationStatus(str, enum.Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


# Sale type written onto every sale folded into an order of the given type.
SALE_TYPE_FOR_ORDER = {
    OrderType.ORDER: SaleType.SALE,
    OrderType.PROFORMA: SaleType.CART,
    OrderType.INVOICE: SaleType.SALE,
}

INITIAL_ORDER_STATUS = {
    OrderType.ORDER: OrderStatus.ACTIVE,
    OrderType.PROFORMA: OrderStatus.PENDING,
    OrderType.INVOICE: OrderStatus.ACTIVE,
}

# (type, status) -> action -> (type, status)
ORDER_TRANSITIONS: dict[tuple[OrderType, OrderStatus], dict[OrderAction, tuple[OrderType, OrderStatus]]] = {
    (OrderType.ORDER, OrderStatus.ACTIVE): {},
    (OrderType.PROFORMA, OrderStatus.PENDING): {
        OrderAction.CONFIRM_PROFORMA: (OrderType.INVOICE, OrderStatus.DONE),
    },
    (OrderType.INVOICE, OrderStatus.ACTIVE): {
        OrderAction.COMMIT_INVOICE_STOCK: (OrderType.INVOICE, OrderStatus.ACTIVE),
    },
    (OrderType.INVOICE, OrderStatus.DONE): {
        OrderAction.COMMIT_INVOICE_STOCK: (OrderType.INVOICE, OrderStatus.DONE),
    },
}


def coerce_enum(enum_cls: type[enum.Enum], value, field: str):
    """Parse a raw payload value into ``enum_cls`` or raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def next_order_state(
    order_type: OrderType, status: OrderStatus, action: OrderAction
) -> tuple[OrderType, OrderStatus]:
    allowed = ORDER_TRANSITIONS.get((order_type, status), {})
    if action not in allowed:
        raise ValidationError(
            f"Cannot {action.value.replace('_', ' ')} an order in state {order_type.value}/{status.value}",
            details={"type": order_type.value, "status": status.value, "action": action.value},
        )
    return allowed[action]
