# Overview: Service-layer operations for financial accounts; the only writer of Account.balance_cents.

"""
Account Balance Engine

WHY: Every movement of money through a cash drawer, bank or mobile wallet is a
Transaction row, and the account balance is the sum of what those rows applied.

DESIGN PRINCIPLES:
- A Transaction stores the exact deltas it applied (balance_delta_cents on the
  account, impact_delta_cents on the impacted account).
- Reversal hides the Transaction and applies the negation of the stored
  deltas, never a recomputation from current rules.
- Supplier accounts track what we owe, so deposit/withdraw signs are inverted.
- Balance writes are single increments (balance = balance + delta); there is
  no read-modify-write of the balance.
"""

from __future__ import annotations

from datetime import datetime

from ..enums import AccountType, TransactionType, TransactionCause, coerce_enum
from ..errors import NotFoundError, PartialUpdateFailure, ValidationError
from ..models import Account, Transaction
from .document_store import store, Inc
from .events import dispatcher, TransactionPosted, TransactionReversed
from .saga import Saga


# =============================================================================
# DELTA RULES
# =============================================================================

def balance_delta(
    account_type: AccountType,
    transaction_type: TransactionType,
    total_amount_cents: int,
    fee_cents: int = 0,
) -> int:
    """
    Amount applied to the transacting account.

    deposit  -> +total
    withdraw -> -(total + fee)
    Signs are inverted for supplier accounts.
    """
    if transaction_type == TransactionType.DEPOSIT:
        delta = total_amount_cents
    else:
        delta = -(total_amount_cents + fee_cents)
    return -delta if account_type == AccountType.SUPPLIER else delta


def impact_delta(
    impacted_type: AccountType,
    transaction_type: TransactionType,
    total_amount_cents: int,
) -> int:
    """The impacted account moves by the opposite of the principal; fees stay on the transacting side."""
    principal = total_amount_cents if transaction_type == TransactionType.DEPOSIT else -total_amount_cents
    delta = -principal
    return -delta if impacted_type == AccountType.SUPPLIER else delta


def _positive_cents(value, field: str, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'non-negative' if allow_zero else 'positive'}")
    return value


def _usable_account(account_id, field: str = "account_id") -> Account:
    if isinstance(account_id, bool) or not isinstance(account_id, int):
        raise ValidationError(f"{field} must be an integer id")
    account = store.find_one(Account, {"id": account_id, "visible": True})
    if account is None:
        raise NotFoundError("Account does not exist", details={field: account_id})
    if account.disabled:
        raise ValidationError("Account is disabled", details={field: account_id})
    return account


def apply_balance(account_id: int, delta_cents: int) -> None:
    """Single increment of an account balance; the only balance write in the engine."""
    if delta_cents == 0:
        return
    modified = store.update_one(Account, {"id": account_id}, {"balance_cents": Inc(delta_cents)})
    if modified != 1:
        raise PartialUpdateFailure(
            f"Failed to update balance of account {account_id}",
            expected=1,
            actual=modified,
        )


def next_transaction_number(branch_id: int) -> str:
    return str(store.count_documents(Transaction, {"branch_id": branch_id}) + 1)


# =============================================================================
# POSTING
# =============================================================================

def post_transaction(
    account_id: int,
    *,
    branch_id: int,
    user_id: int,
    transaction_type,
    total_amount_cents: int,
    fee_cents: int = 0,
    cause=TransactionCause.MANUAL,
    account_to_impact_id: int | None = None,
    debt_history_id: int | None = None,
    reference: str | None = None,
    description: str | None = None,
    date: datetime | None = None,
) -> Transaction:
    """
    Record a Transaction and apply its deltas.

    Order of writes:
    1. Transaction row (with the deltas it is about to apply)
    2. account balance
    3. impacted account balance (when account_to_impact_id is given)
    4. TransactionPosted event

    Raises:
        ValidationError: bad amounts, enum values, disabled account
        NotFoundError: account or impacted account missing
        PartialUpdateFailure: a balance write touched no row
    """
    transaction_type = coerce_enum(TransactionType, transaction_type, "type")
    cause = coerce_enum(TransactionCause, cause, "cause")
    _positive_cents(total_amount_cents, "total_amount_cents")
    _positive_cents(fee_cents, "fee_cents", allow_zero=True)

    account = _usable_account(account_id)
    impacted = None
    if account_to_impact_id is not None:
        impacted = _usable_account(account_to_impact_id, "account_to_impact_id")
        if impacted.id == account.id:
            raise ValidationError("A transaction cannot impact its own account")

    delta = balance_delta(account.type, transaction_type, total_amount_cents, fee_cents)
    other_delta = impact_delta(impacted.type, transaction_type, total_amount_cents) if impacted else 0

    with Saga("post_transaction") as saga:
        fields = dict(
            branch_id=branch_id,
            number=next_transaction_number(branch_id),
            account_id=account.id,
            account_type=account.type,
            account_to_impact_id=impacted.id if impacted else None,
            impact=impacted is not None,
            type=transaction_type,
            cause=cause,
            total_amount_cents=total_amount_cents,
            fee_cents=fee_cents,
            balance_delta_cents=delta,
            impact_delta_cents=other_delta,
            debt_history_id=debt_history_id,
            reference=reference,
            description=description or f"{transaction_type.value.capitalize()} of {total_amount_cents}",
            created_by=user_id,
        )
        if date is not None:
            fields["date"] = date
        transaction = store.create(Transaction, **fields)
        saga.arm("discard_transaction", transaction_id=transaction.id)

        apply_balance(account.id, delta)
        saga.arm("revert_balance", account_id=account.id, delta_cents=delta)

        if impacted is not None:
            apply_balance(impacted.id, other_delta)
            saga.arm("revert_balance", account_id=impacted.id, delta_cents=other_delta)

        dispatcher.dispatch(TransactionPosted(
            branch_id=branch_id,
            user_id=user_id,
            data=transaction.to_dict(),
        ))

    return transaction


def reverse_transaction(transaction_id: int, *, user_id: int) -> Transaction:
    """
    Hide a Transaction and apply the negation of its stored deltas.

    The visibility flip is conditional on visible=True, so two concurrent
    reversals cannot both apply the negation.
    """
    transaction = store.find_one(Transaction, {"id": transaction_id, "visible": True})
    if transaction is None:
        raise NotFoundError("Transaction does not exist", details={"transaction_id": transaction_id})

    with Saga("reverse_transaction") as saga:
        modified = store.update_one(
            Transaction,
            {"id": transaction_id, "visible": True},
            {"visible": False, "updated_by": user_id},
        )
        if modified != 1:
            raise PartialUpdateFailure("Transaction was already reversed", expected=1, actual=modified)
        saga.arm("restore_transaction", transaction_id=transaction_id)

        apply_balance(transaction.account_id, -transaction.balance_delta_cents)
        saga.arm("revert_balance", account_id=transaction.account_id, delta_cents=-transaction.balance_delta_cents)

        if transaction.impact and transaction.account_to_impact_id is not None:
            apply_balance(transaction.account_to_impact_id, -transaction.impact_delta_cents)
            saga.arm(
                "revert_balance",
                account_id=transaction.account_to_impact_id,
                delta_cents=-transaction.impact_delta_cents,
            )

        dispatcher.dispatch(TransactionReversed(
            branch_id=transaction.branch_id,
            user_id=user_id,
            data=transaction.to_dict(),
        ))

    return transaction


def transactions_for_debt_history(debt_history_id: int) -> list[Transaction]:
    return store.find(Transaction, {"debt_history_id": debt_history_id, "visible": True})


# =============================================================================
# COMPENSATIONS
# =============================================================================

def discard_transaction(transaction_id: int) -> int:
    """Hide a Transaction whose balance writes never happened (or were reverted)."""
    return store.update_one(Transaction, {"id": transaction_id}, {"visible": False})


def restore_transaction(transaction_id: int) -> int:
    return store.update_one(Transaction, {"id": transaction_id}, {"visible": True})


def revert_balance(account_id: int, delta_cents: int) -> None:
    apply_balance(account_id, -delta_cents)
