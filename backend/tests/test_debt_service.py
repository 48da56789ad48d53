"""
Debt ledger tests.

Verifies:
- status is paid exactly when paid_amount == total_amount
- overpayment is rejected by the guarded paid counter
- settlement reversal is the exact inverse, accounts included
- the source document follows the debt's paid state
"""

import pytest

from storekeeper.enums import AccountType, DebtSource, DebtStatus, PurchaseStatus, SaleStatus, TransactionType
from storekeeper.errors import NotFoundError, ValidationError
from storekeeper.models import Account, Debt, DebtHistory, Purchase, Sale, Transaction
from storekeeper.services import cart_service, debt_service, purchase_service
from storekeeper.services.document_store import store

from conftest import BRANCH, CUSTOMER, SUPPLIER, USER


@pytest.fixture
def credit_sale(product):
    """A credit sale of 3 x 1000 with its debtor debt of 3000."""
    return cart_service.add_to_cart(
        product_id=product.id, quantity=3, selling_price_cents=1000, sale_type="cart", status="credit",
        branch_id=BRANCH, user_id=USER, number="S-7", customer_id=CUSTOMER,
    )


def sale_debt(sale):
    return debt_service.debts_for_source(DebtSource.SALE, sale.id)[0]


def fetch(model, doc_id):
    return store.find_one(model, {"id": doc_id})


class TestSettle:

    def test_partial_then_full_settlement(self, credit_sale):
        debt = sale_debt(credit_sale)

        debt_service.settle(debt.id, amount_cents=1000, user_id=USER)
        debt = fetch(Debt, debt.id)
        assert (debt.paid_amount_cents, debt.status) == (1000, DebtStatus.UNPAID)
        assert fetch(Sale, credit_sale.id).status == SaleStatus.CREDIT

        debt_service.settle(debt.id, amount_cents=2000, user_id=USER)
        debt = fetch(Debt, debt.id)
        assert (debt.paid_amount_cents, debt.status) == (3000, DebtStatus.PAID)
        assert fetch(Sale, credit_sale.id).status == SaleStatus.CASH

    def test_overpayment_is_rejected(self, credit_sale):
        debt = sale_debt(credit_sale)
        debt_service.settle(debt.id, amount_cents=2500, user_id=USER)

        with pytest.raises(ValidationError) as excinfo:
            debt_service.settle(debt.id, amount_cents=600, user_id=USER)

        assert excinfo.value.details["outstanding_cents"] == 500
        assert fetch(Debt, debt.id).paid_amount_cents == 2500
        assert store.count_documents(DebtHistory, {"debt_id": debt.id}) == 1

    def test_paid_debt_takes_no_more_payments(self, credit_sale):
        debt = sale_debt(credit_sale)
        debt_service.settle(debt.id, amount_cents=3000, user_id=USER)
        with pytest.raises(ValidationError):
            debt_service.settle(debt.id, amount_cents=1, user_id=USER)

    @pytest.mark.parametrize("amount", [0, -5, "100", True])
    def test_amount_must_be_positive_cents(self, credit_sale, amount):
        with pytest.raises(ValidationError):
            debt_service.settle(sale_debt(credit_sale).id, amount_cents=amount, user_id=USER)

    def test_unknown_debt(self, db_session):
        with pytest.raises(NotFoundError):
            debt_service.settle(4040, amount_cents=100, user_id=USER)

    def test_debtor_settlement_deposits_without_fee(self, credit_sale, make_account):
        account = make_account()
        debt = sale_debt(credit_sale)

        history = debt_service.settle(debt.id, amount_cents=1200, user_id=USER, fee_cents=50, account_id=account.id)

        transaction = store.find_one(Transaction, {"debt_history_id": history.id})
        assert transaction.type == TransactionType.DEPOSIT
        assert transaction.fee_cents == 0
        assert fetch(Account, account.id).balance_cents == 1200

    def test_creditor_settlement_withdraws_with_fee(self, product, make_account):
        account = make_account(balance_cents=10_000)
        purchase = purchase_service.create_purchase(
            product_id=product.id, quantity=4, buying_price_cents=1000, selling_price_cents=1500,
            total_amount_cents=4000, paid_amount_cents=1000, supplier_id=SUPPLIER,
            branch_id=BRANCH, user_id=USER,
        )
        debt = debt_service.debts_for_source(DebtSource.PURCHASE, purchase.id)[0]

        debt_service.settle(debt.id, amount_cents=3000, user_id=USER, fee_cents=100, account_id=account.id)

        assert fetch(Account, account.id).balance_cents == 10_000 - 3100
        purchase = fetch(Purchase, purchase.id)
        assert purchase.status == PurchaseStatus.PAID
        assert purchase.paid_amount_cents == 4000


class TestReverseSettlement:

    def test_reversal_is_the_exact_inverse(self, credit_sale, make_account):
        account = make_account(balance_cents=500)
        debt = sale_debt(credit_sale)
        history = debt_service.settle(debt.id, amount_cents=3000, user_id=USER, account_id=account.id)
        assert fetch(Account, account.id).balance_cents == 3500

        debt_service.reverse_settlement(history.id, user_id=USER)

        debt = fetch(Debt, debt.id)
        assert (debt.paid_amount_cents, debt.status) == (0, DebtStatus.UNPAID)
        assert fetch(DebtHistory, history.id).visible is False
        assert fetch(Account, account.id).balance_cents == 500
        assert fetch(Sale, credit_sale.id).status == SaleStatus.CREDIT
        assert store.count_documents(Transaction, {"debt_history_id": history.id, "visible": True}) == 0

    def test_reversing_twice_is_not_found(self, credit_sale):
        history = debt_service.settle(sale_debt(credit_sale).id, amount_cents=100, user_id=USER)
        debt_service.reverse_settlement(history.id, user_id=USER)
        with pytest.raises(NotFoundError):
            debt_service.reverse_settlement(history.id, user_id=USER)


class TestDebtLifecycle:

    def test_duplicate_debt_for_a_source_is_rejected(self, credit_sale):
        with pytest.raises(ValidationError):
            debt_service.open_debt(
                debt_type="debtor", source_type="sale", source_id=credit_sale.id,
                total_amount_cents=100, branch_id=BRANCH, user_id=USER, customer_id=CUSTOMER,
            )

    def test_drop_reverses_settlements_before_deleting(self, credit_sale, make_account):
        account = make_account()
        debt = sale_debt(credit_sale)
        debt_id = debt.id
        debt_service.settle(debt.id, amount_cents=1000, user_id=USER, account_id=account.id)

        assert debt_service.drop_debts(DebtSource.SALE, credit_sale.id, user_id=USER) == 1

        assert store.count_documents(Debt, {"id": debt_id}) == 0
        assert store.count_documents(DebtHistory, {"debt_id": debt_id}) == 0
        assert fetch(Account, account.id).balance_cents == 0

    def test_other_sources_are_notified(self, db_session):
        from storekeeper.services.events import dispatcher, DebtSourceStatusChanged

        seen = []
        handler = seen.append
        dispatcher.subscribe(DebtSourceStatusChanged, handler)
        try:
            debt = debt_service.open_debt(
                debt_type="creditor", source_type="expense", source_id=31,
                total_amount_cents=700, branch_id=BRANCH, user_id=USER,
            )
            debt_service.settle(debt.id, amount_cents=700, user_id=USER)
        finally:
            dispatcher.unsubscribe(DebtSourceStatusChanged, handler)

        assert len(seen) == 1
        assert seen[0].data == {"debt_id": debt.id, "source_type": "expense", "source_id": 31, "status": "paid"}


class TestAccountTypes:

    def test_supplier_account_balance_moves_the_other_way(self, credit_sale, make_account):
        supplier = make_account(name="Supplier ledger", account_type=AccountType.SUPPLIER)
        debt_service.settle(sale_debt(credit_sale).id, amount_cents=400, user_id=USER, account_id=supplier.id)
        assert fetch(Account, supplier.id).balance_cents == -400
