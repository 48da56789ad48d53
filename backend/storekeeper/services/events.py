# Overview: Typed domain events and the dispatcher that routes them to explicit handlers.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from ..enums import ActivityType
"""
Every primary write in the engine produces one DomainEvent. Orchestrators
dispatch it explicitly; nothing cascades from model hooks. Handlers are
registered per event class and receive every event that is an instance of
that class, so a handler on DomainEvent sees everything (the audit log) and a
handler on DebtSourceStatusChanged sees only that.

A handler exception propagates to the dispatching operation: the audit entry
is a required companion of the write that produced the event.
"""


@dataclass
class DomainEvent:
    branch_id: int | None
    user_id: int | None
    data: dict = field(default_factory=dict)
    # Overrides the class-level description for this occurrence
    summary: str | None = None

    module = "engine"
    activity = ActivityType.MODIFICATION
    description = "Engine event"

    @property
    def name(self) -> str:
        return type(self).__name__


# --- sales -------------------------------------------------------------------

@dataclass
class SaleAddedToCart(DomainEvent):
    module = "sale"
    activity = ActivityType.CREATION
    description = "Sale has been added to cart"


@dataclass
class SaleRemovedFromCart(DomainEvent):
    module = "sale"
    activity = ActivityType.DELETION
    description = "Sale has been removed from cart"


@dataclass
class SalesDeleted(DomainEvent):
    module = "sale"
    activity = ActivityType.DELETION
    description = "Sales have been deleted"


# --- orders ------------------------------------------------------------------

@dataclass
class OrderCreated(DomainEvent):
    module = "order"
    activity = ActivityType.CREATION
    description = "Order has been created"


@dataclass
class ProformaConfirmed(DomainEvent):
    module = "order"
    activity = ActivityType.MODIFICATION
    description = "Proforma invoice has been confirmed and converted to invoice"


@dataclass
class InvoiceStockCommitted(DomainEvent):
    module = "order"
    activity = ActivityType.MODIFICATION
    description = "Invoice sales have been verified and stock committed"


@dataclass
class OrderDeleted(DomainEvent):
    module = "order"
    activity = ActivityType.DELETION
    description = "Order has been deleted"


@dataclass
class EmptyOrderDeleted(DomainEvent):
    module = "order"
    activity = ActivityType.DELETION
    description = "Order has been deleted because its last sale was removed"


# --- purchases & products ----------------------------------------------------

@dataclass
class PurchaseCreated(DomainEvent):
    module = "purchase"
    activity = ActivityType.CREATION
    description = "New purchase has been created"


@dataclass
class PurchaseModified(DomainEvent):
    module = "purchase"
    activity = ActivityType.MODIFICATION
    description = "Purchase has been modified"


@dataclass
class PurchaseDeleted(DomainEvent):
    module = "purchase"
    activity = ActivityType.DELETION
    description = "Purchase has been deleted temporarily"


@dataclass
class ProductCreated(DomainEvent):
    module = "product"
    activity = ActivityType.CREATION
    description = "New product has been created"


@dataclass
class ProductModified(DomainEvent):
    module = "product"
    activity = ActivityType.MODIFICATION
    description = "Product has been modified"


@dataclass
class ProductDeleted(DomainEvent):
    module = "product"
    activity = ActivityType.DELETION
    description = "Product has been deleted temporarily"


@dataclass
class ProductRestored(DomainEvent):
    module = "product"
    activity = ActivityType.RESTORATION
    description = "Product has been restored"


# --- debts & accounts --------------------------------------------------------

@dataclass
class DebtOpened(DomainEvent):
    module = "debt"
    activity = ActivityType.CREATION
    description = "Debt has been created"


@dataclass
class DebtDropped(DomainEvent):
    module = "debt"
    activity = ActivityType.DELETION
    description = "Debt has been deleted"


@dataclass
class DebtSettled(DomainEvent):
    module = "debt_history"
    activity = ActivityType.CREATION
    description = "Debt payment has been recorded"


@dataclass
class DebtSettlementReversed(DomainEvent):
    module = "debt_history"
    activity = ActivityType.DELETION
    description = "Debt payment has been reversed"


@dataclass
class DebtSourceStatusChanged(DomainEvent):
    """A debt's paid/unpaid status changed for a source document the engine does not own."""
    module = "debt"
    activity = ActivityType.MODIFICATION
    description = "Debt source document status changed"


@dataclass
class TransactionPosted(DomainEvent):
    module = "transaction"
    activity = ActivityType.CREATION
    description = "Transaction has been created"


@dataclass
class TransactionReversed(DomainEvent):
    module = "transaction"
    activity = ActivityType.DELETION
    description = "Transaction has been deleted"


Handler = Callable[[DomainEvent], Any]


class EventDispatcher:
    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_cls: type, handler: Handler) -> None:
        if handler not in self._handlers[event_cls]:
            self._handlers[event_cls].append(handler)

    def unsubscribe(self, event_cls: type, handler: Handler) -> None:
        if handler in self._handlers.get(event_cls, []):
            self._handlers[event_cls].remove(handler)

    def handlers_for(self, event: DomainEvent) -> list[Handler]:
        handlers: list[Handler] = []
        for cls in type(event).__mro__:
            handlers.extend(self._handlers.get(cls, []))
        return handlers

    def dispatch(self, event: DomainEvent) -> list:
        return [handler(event) for handler in self.handlers_for(event)]


dispatcher = EventDispatcher()
