"""
Stock ledger tests.

Verifies:
- Every counter move is paired with exactly one journal row
- A failed journal write is reported with the movement it could not record
- Decrements are conditional (no negative stock, no partial write)
- Manual edits only apply against the level the caller saw
- The visible journal replays to the counter
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from storekeeper.enums import AdjustmentSource, AdjustmentType
from storekeeper.errors import (
    DependentWriteFailure,
    InsufficientStock,
    NotFoundError,
    PartialUpdateFailure,
    ValidationError,
)
from storekeeper.models import Adjustment, Product
from storekeeper.services import stock_service
from storekeeper.services.document_store import store

from conftest import BRANCH, USER


class TestReserveRelease:

    def test_reserve_then_release_restores_stock_with_mirror_adjustments(self, product, stock_of):
        reserved = stock_service.reserve(product.id, 4, branch_id=BRANCH, user_id=USER, sale_id=501)
        released = stock_service.release(product.id, 4, branch_id=BRANCH, user_id=USER, sale_id=501)

        assert stock_of(product.id) == 10
        assert (reserved.before, reserved.after) == (10, 6)
        assert (released.before, released.after) == (6, 10)

        rows = store.find(Adjustment, {"sale_id": 501})
        assert [(r.type, r.amount, r.before_adjustment, r.after_adjustment) for r in rows] == [
            (AdjustmentType.DECREASE, 4, 10, 6),
            (AdjustmentType.INCREASE, 4, 6, 10),
        ]
        assert all(r.source == AdjustmentSource.SALE_CART for r in rows)

    def test_reserve_more_than_available_touches_nothing(self, product, stock_of):
        with pytest.raises(InsufficientStock) as excinfo:
            stock_service.reserve(product.id, 11, branch_id=BRANCH, user_id=USER)

        assert excinfo.value.available == 10
        assert excinfo.value.required == 11
        assert "Insufficient stock" in str(excinfo.value)
        assert stock_of(product.id) == 10
        assert store.count_documents(Adjustment, {"product_id": product.id}) == 1

    def test_reserve_entire_stock_reaches_zero(self, product, stock_of):
        stock_service.reserve(product.id, 10, branch_id=BRANCH, user_id=USER)
        assert stock_of(product.id) == 0

    def test_hidden_product_is_not_found(self, product):
        store.update_one(Product, {"id": product.id}, {"visible": False})
        with pytest.raises(NotFoundError):
            stock_service.reserve(product.id, 1, branch_id=BRANCH, user_id=USER)
        with pytest.raises(NotFoundError):
            stock_service.release(product.id, 1, branch_id=BRANCH, user_id=USER)

    def test_product_of_another_branch_is_not_found(self, product):
        with pytest.raises(NotFoundError):
            stock_service.reserve(product.id, 1, branch_id=BRANCH + 1, user_id=USER)

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, True, "3"])
    def test_quantity_must_be_a_positive_integer(self, product, quantity):
        with pytest.raises(ValidationError):
            stock_service.reserve(product.id, quantity, branch_id=BRANCH, user_id=USER)

    def test_purchase_increment_also_moves_quantity(self, product, db_session):
        stock_service.increment(
            product.id, 5,
            branch_id=BRANCH, user_id=USER,
            source=AdjustmentSource.PURCHASE, description="received", also_quantity=True,
        )
        db_session.expire_all()
        refreshed = db_session.get(Product, product.id)
        assert refreshed.stock == 15
        assert refreshed.quantity == 5


class TestSetLevel:

    def test_manual_edit_journals_the_difference(self, product, stock_of):
        movement = stock_service.set_level(product.id, expected=10, target=4, branch_id=BRANCH, user_id=USER)

        assert stock_of(product.id) == 4
        adjustment = movement.adjustment
        assert adjustment.type == AdjustmentType.DECREASE
        assert adjustment.source == AdjustmentSource.USER
        assert adjustment.amount == 6
        assert adjustment.description == "Stock has been manually decreased due to product edit"

    def test_unchanged_level_writes_nothing(self, product):
        assert stock_service.set_level(product.id, expected=10, target=10, branch_id=BRANCH, user_id=USER) is None
        assert store.count_documents(Adjustment, {"product_id": product.id}) == 1

    def test_stale_expected_level_is_rejected(self, product, stock_of):
        stock_service.reserve(product.id, 2, branch_id=BRANCH, user_id=USER)

        with pytest.raises(PartialUpdateFailure):
            stock_service.set_level(product.id, expected=10, target=20, branch_id=BRANCH, user_id=USER)
        assert stock_of(product.id) == 8

    def test_negative_target_is_rejected(self, product):
        with pytest.raises(ValidationError):
            stock_service.set_level(product.id, expected=10, target=-1, branch_id=BRANCH, user_id=USER)


class TestJournal:

    def test_replay_matches_counter_and_chain_is_unbroken(self, product):
        stock_service.reserve(product.id, 3, branch_id=BRANCH, user_id=USER, sale_id=1)
        stock_service.release(product.id, 1, branch_id=BRANCH, user_id=USER, sale_id=2)
        stock_service.set_level(product.id, expected=8, target=12, branch_id=BRANCH, user_id=USER)

        report = stock_service.stock_consistency(store.find_one(Product, {"id": product.id}))
        assert report["stock"] == 12
        assert report["journal_stock"] == 12
        assert report["consistent"] is True
        assert report["chain_breaks"] == []

    def test_hidden_rows_leave_the_replay_but_stay_in_the_chain(self, product):
        stock_service.reserve(product.id, 3, branch_id=BRANCH, user_id=USER, sale_id=77)
        stock_service.release(product.id, 3, branch_id=BRANCH, user_id=USER, sale_id=77)

        assert stock_service.hide_adjustments(sale_id=77) == 2
        assert stock_service.replay(product.id) == 10
        assert stock_service.verify_chain(product.id) == []
        assert len(stock_service.list_adjustments(product_id=product.id)) == 1
        assert len(stock_service.list_adjustments(product_id=product.id, include_hidden=True)) == 3

    def test_list_is_newest_first(self, product):
        stock_service.reserve(product.id, 1, branch_id=BRANCH, user_id=USER)
        rows = stock_service.list_adjustments(product_id=product.id)
        assert rows[0].type == AdjustmentType.DECREASE
        assert rows[-1].description == "Opening stock"

    def test_counter_drift_is_detected(self, product):
        store.update_one(Product, {"id": product.id}, {"stock": 25})
        report = stock_service.stock_consistency(store.find_one(Product, {"id": product.id}))
        assert report["consistent"] is False
        assert report["journal_stock"] == 10

    def test_hide_adjustments_needs_a_key(self):
        with pytest.raises(ValidationError):
            stock_service.hide_adjustments()

    def test_journal_write_failure_leaves_the_counter_moved(self, product, stock_of, monkeypatch):
        create = store.create

        def create_without_adjustments(model, **fields):
            if model is Adjustment:
                raise SQLAlchemyError("database is locked")
            return create(model, **fields)

        monkeypatch.setattr(store, "create", create_without_adjustments)

        with pytest.raises(DependentWriteFailure) as excinfo:
            stock_service.reserve(product.id, 2, branch_id=BRANCH, user_id=USER, sale_id=88)

        assert excinfo.value.details == {
            "product_id": product.id, "type": "decrease", "before": 10, "after": 8, "amount": 2,
        }
        assert stock_of(product.id) == 8
        assert store.count_documents(Adjustment, {"sale_id": 88}) == 0

        monkeypatch.undo()
        report = stock_service.stock_consistency(store.find_one(Product, {"id": product.id}))
        assert report["consistent"] is False
        assert report["journal_stock"] == 10
