# Overview: Service-layer operations for debts; the only writer of Debt.paid_amount_cents and Debt.status.

from __future__ import annotations

from sqlalchemy import case

from ..enums import (
    DebtType,
    DebtStatus,
    DebtSource,
    SaleStatus,
    PurchaseStatus,
    TransactionType,
    TransactionCause,
    coerce_enum,
)
from ..errors import NotFoundError, PartialDeleteFailure, PartialUpdateFailure, ValidationError
from ..models import Debt, DebtHistory, Sale, Purchase
from .document_store import store, Inc
from .events import (
    dispatcher,
    DebtOpened,
    DebtDropped,
    DebtSettled,
    DebtSettlementReversed,
    DebtSourceStatusChanged,
)
from .saga import Saga
from . import account_service
"""
Debt Ledger Invariants (authoritative)

- paid_amount_cents <= total_amount_cents, always.
- status == paid  <=>  paid_amount_cents == total_amount_cents.
- paid_amount_cents only moves through settle / reverse_settlement, each a
  single conditional UPDATE that sets paid and status together:
    settle:   paid += a, status = CASE(paid + a == total) WHERE paid + a <= total
    reverse:  paid -= a, status = unpaid                  WHERE paid >= a
- After every paid/status change the source document is brought in line:
    sale      -> status cash (paid) / credit (unpaid)
    purchase  -> status paid/unpaid, paid_amount = total - outstanding
    other     -> DebtSourceStatusChanged event for the owning collaborator
- A settlement paid through an account posts an automatic Transaction:
  creditor debts withdraw (with fee), debtor debts deposit (no fee).
"""


def _int_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer id")
    return value


def _visible_debt(debt_id: int) -> Debt:
    debt = store.find_one(Debt, {"id": _int_id(debt_id, "debt_id"), "visible": True})
    if debt is None:
        raise NotFoundError("Debt does not exist", details={"debt_id": debt_id})
    return debt


# ----------------------------------------------------------------- opening

def open_debt(
    *,
    debt_type,
    source_type,
    source_id: int,
    total_amount_cents: int,
    branch_id: int,
    user_id: int,
    customer_id: int | None = None,
    supplier_id: int | None = None,
    product_id: int | None = None,
    description: str | None = None,
) -> Debt:
    debt_type = coerce_enum(DebtType, debt_type, "type")
    source_type = coerce_enum(DebtSource, source_type, "source_type")
    _int_id(source_id, "source_id")

    if isinstance(total_amount_cents, bool) or not isinstance(total_amount_cents, int) or total_amount_cents <= 0:
        raise ValidationError("Debt amount must be a positive integer amount in cents")
    if debt_type == DebtType.DEBTOR and customer_id is None:
        raise ValidationError("A debtor debt requires a customer")

    existing = store.count_documents(Debt, {"source_type": source_type, "source_id": source_id, "visible": True})
    if existing:
        raise ValidationError(
            "A debt already exists for this source",
            details={"source_type": source_type.value, "source_id": source_id},
        )

    debt = store.create(
        Debt,
        branch_id=branch_id,
        type=debt_type,
        status=DebtStatus.UNPAID,
        total_amount_cents=total_amount_cents,
        paid_amount_cents=0,
        source_type=source_type,
        source_id=source_id,
        customer_id=customer_id,
        supplier_id=supplier_id,
        product_id=product_id,
        description=description,
        created_by=user_id,
    )
    dispatcher.dispatch(DebtOpened(branch_id=branch_id, user_id=user_id, data=debt.to_dict()))
    return debt


def debts_for_source(source_type, source_id: int) -> list[Debt]:
    source_type = coerce_enum(DebtSource, source_type, "source_type")
    return store.find(Debt, {"source_type": source_type, "source_id": source_id, "visible": True})


# --------------------------------------------------------- paid counter writes

def apply_payment(debt_id: int, amount_cents: int, *, user_id: int | None = None) -> None:
    """paid += amount in one guarded write; status follows in the same statement."""
    new_paid = Debt.paid_amount_cents + amount_cents
    patch = {
        "paid_amount_cents": Inc(amount_cents),
        "status": case((new_paid == Debt.total_amount_cents, DebtStatus.PAID.value), else_=DebtStatus.UNPAID.value),
    }
    if user_id is not None:
        patch["updated_by"] = user_id
    modified = store.update_one(Debt, {"id": debt_id}, patch, new_paid <= Debt.total_amount_cents)
    if modified != 1:
        debt = store.find_one(Debt, {"id": debt_id})
        if debt is None:
            raise NotFoundError("Debt does not exist", details={"debt_id": debt_id})
        raise ValidationError(
            "Payment exceeds the outstanding debt amount",
            details={
                "debt_id": debt_id,
                "outstanding_cents": debt.outstanding_cents,
                "amount_cents": amount_cents,
            },
        )
    sync_debt_source(debt_id)


def revert_payment(debt_id: int, amount_cents: int, *, user_id: int | None = None) -> None:
    patch = {"paid_amount_cents": Inc(-amount_cents), "status": DebtStatus.UNPAID}
    if user_id is not None:
        patch["updated_by"] = user_id
    modified = store.update_one(Debt, {"id": debt_id}, patch, Debt.paid_amount_cents >= amount_cents)
    if modified != 1:
        raise PartialUpdateFailure(
            f"Failed to revert payment of {amount_cents} on debt {debt_id}",
            expected=1,
            actual=modified,
        )
    sync_debt_source(debt_id)


def sync_debt_source(debt_id: int) -> None:
    """Bring the debt's source document in line with the debt's current paid state."""
    debt = store.find_one(Debt, {"id": debt_id})
    if debt is None:
        raise NotFoundError("Debt does not exist", details={"debt_id": debt_id})

    paid = debt.status == DebtStatus.PAID

    if debt.source_type == DebtSource.SALE:
        status = SaleStatus.CASH if paid else SaleStatus.CREDIT
        modified = store.update_one(Sale, {"id": debt.source_id}, {"status": status})
        if modified != 1:
            raise PartialUpdateFailure(
                f"Failed to update status of sale {debt.source_id}",
                expected=1,
                actual=modified,
            )
        return

    if debt.source_type == DebtSource.PURCHASE:
        purchase = store.find_one(Purchase, {"id": debt.source_id})
        if purchase is None:
            raise NotFoundError("Purchase does not exist", details={"purchase_id": debt.source_id})
        modified = store.update_one(
            Purchase,
            {"id": purchase.id},
            {
                "status": PurchaseStatus.PAID if paid else PurchaseStatus.UNPAID,
                "paid_amount_cents": purchase.total_amount_cents - debt.outstanding_cents,
            },
        )
        if modified != 1:
            raise PartialUpdateFailure(
                f"Failed to update payment of purchase {purchase.id}",
                expected=1,
                actual=modified,
            )
        return

    # Expenses, quotation invoices and truck orders belong to other collaborators.
    dispatcher.dispatch(DebtSourceStatusChanged(
        branch_id=debt.branch_id,
        user_id=debt.updated_by,
        data={
            "debt_id": debt.id,
            "source_type": debt.source_type.value,
            "source_id": debt.source_id,
            "status": debt.status.value,
        },
    ))


# ----------------------------------------------------------------- settlement

def settle(
    debt_id: int,
    *,
    amount_cents: int,
    user_id: int,
    fee_cents: int = 0,
    account_id: int | None = None,
    reference: str | None = None,
    description: str | None = None,
) -> DebtHistory:
    """
    Record a payment against a debt (a DebtHistory row).

    The paid counter moves first; its guard is what rejects overpayment,
    including two concurrent settlements that would jointly overpay.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Settlement amount must be a positive integer amount in cents")
    if isinstance(fee_cents, bool) or not isinstance(fee_cents, int) or fee_cents < 0:
        raise ValidationError("fee_cents must be a non-negative integer amount in cents")

    debt = _visible_debt(debt_id)
    if debt.status == DebtStatus.PAID:
        raise ValidationError("Debt is already paid", details={"debt_id": debt.id})

    with Saga("settle_debt") as saga:
        apply_payment(debt.id, amount_cents, user_id=user_id)
        saga.arm("revert_debt_payment", debt_id=debt.id, amount_cents=amount_cents)

        history = store.create(
            DebtHistory,
            debt_id=debt.id,
            branch_id=debt.branch_id,
            total_amount_cents=amount_cents,
            fee_cents=fee_cents,
            account_id=account_id,
            reference=reference,
            description=description,
            created_by=user_id,
        )
        saga.arm("discard_debt_history", debt_history_id=history.id)

        if account_id is not None:
            creditor = debt.type == DebtType.CREDITOR
            account_service.post_transaction(
                account_id,
                branch_id=debt.branch_id,
                user_id=user_id,
                transaction_type=TransactionType.WITHDRAW if creditor else TransactionType.DEPOSIT,
                total_amount_cents=amount_cents,
                fee_cents=fee_cents if creditor else 0,
                cause=TransactionCause.AUTOMATIC,
                debt_history_id=history.id,
                reference=reference,
                description=description or f"Debt payment for {debt.source_type.value} {debt.source_id}",
            )

        dispatcher.dispatch(DebtSettled(
            branch_id=debt.branch_id,
            user_id=user_id,
            data=history.to_dict(),
        ))

    return history


def reverse_settlement(debt_history_id: int, *, user_id: int) -> DebtHistory:
    """Exact inverse of settle: hide the history, give back the amount, reverse its transaction."""
    history = store.find_one(DebtHistory, {"id": _int_id(debt_history_id, "debt_history_id"), "visible": True})
    if history is None:
        raise NotFoundError("Debt payment does not exist", details={"debt_history_id": debt_history_id})

    with Saga("reverse_debt_settlement") as saga:
        modified = store.update_one(
            DebtHistory,
            {"id": history.id, "visible": True},
            {"visible": False, "updated_by": user_id},
        )
        if modified != 1:
            raise PartialUpdateFailure("Debt payment was already reversed", expected=1, actual=modified)
        saga.arm("restore_debt_history", debt_history_id=history.id)

        revert_payment(history.debt_id, history.total_amount_cents, user_id=user_id)
        saga.arm("reapply_debt_payment", debt_id=history.debt_id, amount_cents=history.total_amount_cents)

        for transaction in account_service.transactions_for_debt_history(history.id):
            account_service.reverse_transaction(transaction.id, user_id=user_id)

        dispatcher.dispatch(DebtSettlementReversed(
            branch_id=history.branch_id,
            user_id=user_id,
            data=history.to_dict(),
        ))

    return history


# ----------------------------------------------------------------- removal

def drop_debts(source_type, source_id: int, *, user_id: int) -> int:
    """
    Remove the debts attached to a source document: reverse every visible
    settlement first (so accounts are made whole), then delete the histories
    and the debt. Returns the number of debts removed.
    """
    dropped = 0
    for debt in debts_for_source(source_type, source_id):
        for history in store.find(DebtHistory, {"debt_id": debt.id, "visible": True}):
            reverse_settlement(history.id, user_id=user_id)

        snapshot = debt.to_dict()
        expected = store.count_documents(DebtHistory, {"debt_id": debt.id})
        deleted = store.delete_many(DebtHistory, {"debt_id": debt.id})
        if deleted != expected:
            raise PartialDeleteFailure(
                f"Failed to delete payments of debt {debt.id}",
                expected=expected,
                actual=deleted,
            )

        deleted = store.delete_one(Debt, {"id": debt.id})
        if deleted != 1:
            raise PartialDeleteFailure(f"Failed to delete debt {debt.id}", expected=1, actual=deleted)

        dispatcher.dispatch(DebtDropped(branch_id=snapshot["branch_id"], user_id=user_id, data=snapshot))
        dropped += 1
    return dropped


# ----------------------------------------------------------------- compensations

def discard_debt_history(debt_history_id: int) -> int:
    return store.update_one(DebtHistory, {"id": debt_history_id}, {"visible": False})


def restore_debt_history(debt_history_id: int) -> int:
    return store.update_one(DebtHistory, {"id": debt_history_id}, {"visible": True})
