"""
Order lifecycle tests.

Verifies:
- Orders are only created when every product can cover its sales
- Plain orders reserve every line that did not already hold stock
- Proforma confirmation changes state only; invoice confirmation commits stock
- delete_order never releases stock; delete_sales releases held stock,
  drops debts and removes orders left without sales
- Writes whose row count comes back short are reported
"""

import pytest

from storekeeper.enums import OrderStatus, OrderType, SaleStatus, SaleType
from storekeeper.errors import (
    DependentWriteFailure,
    InsufficientStock,
    NotFoundError,
    PartialDeleteFailure,
    PartialUpdateFailure,
    ValidationError,
)
from storekeeper.models import Adjustment, Debt, Order, PendingCompensation, Sale
from storekeeper.services import cart_service, compensation_service, order_service, stock_service
from storekeeper.services.document_store import store

from conftest import BRANCH, CUSTOMER, USER


def add(product, quantity, status="cash", **kwargs):
    return cart_service.add_to_cart(
        product_id=product.id,
        quantity=quantity,
        selling_price_cents=1000,
        sale_type="cart",
        status=status,
        branch_id=BRANCH,
        user_id=USER,
        number="S-100",
        **kwargs,
    )


def fetch(model, doc_id):
    return store.find_one(model, {"id": doc_id})


class TestCreateOrder:

    def test_folds_sales_into_an_order(self, product):
        first = add(product, 2)
        second = add(product, 1)

        order = order_service.create_order(sale_ids=[first.id, second.id], branch_id=BRANCH, user_id=USER, number="O-1")

        assert (order.type, order.status) == (OrderType.ORDER, OrderStatus.ACTIVE)
        for sale_id in (first.id, second.id):
            sale = fetch(Sale, sale_id)
            assert sale.type == SaleType.SALE
            assert sale.order_id == order.id

    def test_insufficient_stock_creates_nothing(self, make_product, stock_of):
        product = make_product(stock=5)
        quote = add(product, 8, status="invoice")

        with pytest.raises(InsufficientStock) as excinfo:
            order_service.create_order(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER)

        assert excinfo.value.available == 5
        assert excinfo.value.required == 8
        assert store.count_documents(Order) == 0
        assert fetch(Sale, quote.id).type == SaleType.CART
        assert fetch(Sale, quote.id).order_id is None
        assert stock_of(product.id) == 5

    def test_quantities_are_summed_per_product(self, make_product):
        product = make_product(stock=5)
        a = add(product, 3, status="invoice")
        b = add(product, 3, status="invoice")

        with pytest.raises(InsufficientStock):
            order_service.create_order(sale_ids=[a.id, b.id], branch_id=BRANCH, user_id=USER)

    def test_reserved_sales_are_not_checked_again(self, make_product):
        product = make_product(stock=5)
        sale = add(product, 5)

        order = order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)
        assert order.id is not None

    @pytest.mark.parametrize("sale_ids", [[], None, [1, 1], ["x"]])
    def test_bad_id_lists(self, db_session, sale_ids):
        with pytest.raises(ValidationError):
            order_service.create_order(sale_ids=sale_ids, branch_id=BRANCH, user_id=USER)

    def test_missing_sale(self, product):
        sale = add(product, 1)
        with pytest.raises(NotFoundError):
            order_service.create_order(sale_ids=[sale.id, sale.id + 100], branch_id=BRANCH, user_id=USER)
        assert store.count_documents(Order) == 0

    def test_sale_already_in_an_order(self, product):
        sale = add(product, 1)
        order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)
        with pytest.raises(ValidationError):
            order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)

    def test_save_sale_derives_proforma_from_invoice_lines(self, product):
        quote = add(product, 2, status="invoice")
        order = order_service.save_sale(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER, number="P-1")

        assert (order.type, order.status) == (OrderType.PROFORMA, OrderStatus.PENDING)
        assert order.is_verified is False
        assert fetch(Sale, quote.id).type == SaleType.CART

    def test_save_sale_of_cash_lines_is_an_order(self, product):
        sale = add(product, 2)
        order = order_service.save_sale(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER, number="O-2")
        assert order.type == OrderType.ORDER
        assert order.is_verified is True

    def test_quoted_line_is_reserved_when_ordered(self, product, stock_of):
        quote = add(product, 4, status="invoice")
        assert stock_of(product.id) == 10

        order = order_service.create_order(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER)

        assert (order.type, order.status) == (OrderType.ORDER, OrderStatus.ACTIVE)
        sale = fetch(Sale, quote.id)
        assert (sale.type, sale.status) == (SaleType.SALE, SaleStatus.CASH)
        assert sale.holds_stock is True
        assert (sale.stock_before, sale.stock_after) == (10, 6)
        assert stock_of(product.id) == 6

    def test_mixed_save_sale_reserves_only_the_quoted_line(self, product, stock_of):
        sale = add(product, 2)
        quote = add(product, 3, status="invoice")
        assert stock_of(product.id) == 8

        order = order_service.save_sale(sale_ids=[sale.id, quote.id], branch_id=BRANCH, user_id=USER, number="O-3")

        assert order.type == OrderType.ORDER
        assert stock_of(product.id) == 5
        assert store.count_documents(Adjustment, {"sale_id": sale.id}) == 1
        assert store.count_documents(Adjustment, {"sale_id": quote.id}) == 1

    def test_ordered_quote_is_released_on_delete(self, product, stock_of):
        quote = add(product, 4, status="invoice")
        order_service.create_order(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER)

        order_service.delete_sales([quote.id], user_id=USER)

        assert stock_of(product.id) == 10

    def test_failed_reservation_queues_the_discard(self, product, stock_of, monkeypatch):
        quote = add(product, 4, status="invoice")

        def failing_reserve(*args, **kwargs):
            raise DependentWriteFailure("Stock write failed")

        monkeypatch.setattr(stock_service, "reserve", failing_reserve)
        with pytest.raises(DependentWriteFailure):
            order_service.create_order(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER)

        [entry] = store.find(PendingCompensation, {})
        assert entry.compensation == "discard_order"
        assert entry.payload["sale_statuses"] == {str(quote.id): "invoice"}

        monkeypatch.undo()
        assert compensation_service.run_pending_compensations()["done"] == 1

        sale = fetch(Sale, quote.id)
        assert (sale.type, sale.status, sale.order_id) == (SaleType.CART, SaleStatus.INVOICE, None)
        assert store.count_documents(Order) == 0
        assert stock_of(product.id) == 10


class TestConfirm:

    def test_proforma_then_invoice_scenario(self, make_product, stock_of):
        product = make_product(stock=20)
        a = add(product, 2, status="invoice")
        b = add(product, 3, status="invoice")
        order = order_service.save_sale(sale_ids=[a.id, b.id], branch_id=BRANCH, user_id=USER, number="P-2")

        confirmed = order_service.confirm(order.id, user_id=USER)
        assert (confirmed.type, confirmed.status) == (OrderType.INVOICE, OrderStatus.DONE)
        assert confirmed.is_verified is True
        assert confirmed.is_printed is False
        assert stock_of(product.id) == 20

        committed = order_service.confirm(order.id, user_id=USER)
        assert committed.verified_sales is True
        assert stock_of(product.id) == 15
        for sale_id in (a.id, b.id):
            sale = fetch(Sale, sale_id)
            assert (sale.type, sale.status) == (SaleType.SALE, SaleStatus.CASH)
            assert sale.holds_stock is True

    def test_invoice_commit_is_not_repeated(self, make_product):
        product = make_product(stock=20)
        sale = add(product, 2, status="invoice")
        order = order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER, order_type="invoice")

        order_service.confirm(order.id, user_id=USER)
        with pytest.raises(ValidationError):
            order_service.confirm(order.id, user_id=USER)

    def test_invoice_commit_checks_stock_first(self, make_product, stock_of):
        product = make_product(stock=20)
        sale = add(product, 6, status="invoice")
        order = order_service.save_sale(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)
        order_service.confirm(order.id, user_id=USER)
        store.update_one(Sale, {"id": sale.id}, {"quantity": 30})

        with pytest.raises(InsufficientStock):
            order_service.confirm(order.id, user_id=USER)
        assert stock_of(product.id) == 20
        assert fetch(Sale, sale.id).status == SaleStatus.INVOICE

    def test_plain_order_has_no_confirm_transition(self, product):
        sale = add(product, 1)
        order = order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)
        with pytest.raises(ValidationError):
            order_service.confirm(order.id, user_id=USER)

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.confirm(12345, user_id=USER)


class TestDeletion:

    def test_delete_order_hides_sales_without_releasing(self, product, stock_of):
        sale = add(product, 4)
        order = order_service.create_order(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)

        deleted = order_service.delete_order(order.id, user_id=USER)

        assert deleted.visible is False
        assert fetch(Sale, sale.id).visible is False
        assert stock_of(product.id) == 6

    def test_deleting_a_proforma_returns_lines_to_cart(self, product):
        quote = add(product, 1, status="invoice")
        order = order_service.save_sale(sale_ids=[quote.id], branch_id=BRANCH, user_id=USER)
        order_service.delete_order(order.id, user_id=USER)
        assert fetch(Sale, quote.id).type == SaleType.CART

    def test_delete_credit_sale_scenario(self, product, stock_of):
        sale = add(product, 4, status="credit", customer_id=CUSTOMER)
        order = order_service.save_sale(sale_ids=[sale.id], branch_id=BRANCH, user_id=USER)
        assert stock_of(product.id) == 6
        sale_id, order_id = sale.id, order.id

        assert order_service.delete_sales([sale_id], user_id=USER) == 1

        assert stock_of(product.id) == 10
        assert store.count_documents(Debt) == 0
        assert store.count_documents(Sale, {"id": sale_id}) == 0
        assert store.count_documents(Order, {"id": order_id}) == 0

    def test_order_survives_while_it_has_sales(self, product):
        a = add(product, 1)
        b = add(product, 1)
        order = order_service.create_order(sale_ids=[a.id, b.id], branch_id=BRANCH, user_id=USER)
        order_id = order.id

        order_service.delete_sales([a.id], user_id=USER)
        assert store.count_documents(Order, {"id": order_id}) == 1

        order_service.delete_sales([b.id], user_id=USER)
        assert store.count_documents(Order, {"id": order_id}) == 0

    def test_stock_that_was_never_reserved_is_not_released(self, product, stock_of):
        quote = add(product, 3, status="invoice")
        order_service.delete_sales([quote.id], user_id=USER)
        assert stock_of(product.id) == 10

    def test_unknown_id_aborts_before_any_write(self, product, stock_of):
        sale = add(product, 2)
        with pytest.raises(NotFoundError):
            order_service.delete_sales([sale.id, sale.id + 50], user_id=USER)
        assert stock_of(product.id) == 8
        assert store.count_documents(Sale, {"id": sale.id}) == 1


class TestWriteCounts:

    def test_short_sale_update_fails_the_order(self, product, monkeypatch):
        a = add(product, 1)
        b = add(product, 1)
        monkeypatch.setattr(store, "update_many", lambda model, condition, patch, *criteria: 1)

        with pytest.raises(PartialUpdateFailure) as excinfo:
            order_service.create_order(sale_ids=[a.id, b.id], branch_id=BRANCH, user_id=USER)

        assert str(excinfo.value) == "Failed to update sales status"
        assert (excinfo.value.expected, excinfo.value.actual) == (2, 1)
        assert [e.compensation for e in store.find(PendingCompensation, {})] == ["discard_order"]

        monkeypatch.undo()
        compensation_service.run_pending_compensations()
        assert store.count_documents(Order) == 0

    def test_short_invoice_update_stops_the_commit(self, make_product, stock_of, monkeypatch):
        product = make_product(stock=20)
        a = add(product, 2, status="invoice")
        b = add(product, 3, status="invoice")
        order = order_service.create_order(sale_ids=[a.id, b.id], branch_id=BRANCH, user_id=USER, order_type="invoice")
        monkeypatch.setattr(store, "update_many", lambda model, condition, patch, *criteria: 1)

        with pytest.raises(PartialUpdateFailure) as excinfo:
            order_service.confirm(order.id, user_id=USER)

        assert str(excinfo.value) == "Failed to update all related sales"
        assert (excinfo.value.expected, excinfo.value.actual) == (2, 1)
        assert stock_of(product.id) == 20
        assert fetch(Order, order.id).verified_sales is False

    def test_short_delete_is_reported(self, product, stock_of, monkeypatch):
        sale = add(product, 2)
        monkeypatch.setattr(store, "delete_many", lambda model, condition, *criteria: 0)

        with pytest.raises(PartialDeleteFailure) as excinfo:
            order_service.delete_sales([sale.id], user_id=USER)

        assert str(excinfo.value) == "Failed to delete all specified sales"
        assert (excinfo.value.expected, excinfo.value.actual) == (1, 0)
        assert stock_of(product.id) == 10
        assert store.count_documents(Sale, {"id": sale.id}) == 1
