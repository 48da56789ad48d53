"""
Document store tests: conditions, counted writes, guarded updates, retry.
"""

import pytest
from sqlalchemy.exc import OperationalError

from storekeeper.enums import AccountType
from storekeeper.errors import ValidationError
from storekeeper.models import Account, Product
from storekeeper.services.concurrency import run_with_retry
from storekeeper.services.document_store import Inc, store


@pytest.fixture
def shelf(make_product):
    return [
        make_product(name="Rice 1kg", stock=4),
        make_product(name="Sugar 1kg", stock=0),
        make_product(name="Salt 500g", stock=12),
    ]


class TestConditions:

    def test_list_means_in(self, shelf):
        rice, _, salt = shelf
        assert store.count_documents(Product, {"id": [rice.id, salt.id]}) == 2

    def test_none_means_is_null(self, shelf):
        assert store.count_documents(Product, {"category_id": None}) == 3

    def test_raw_criteria_combine_with_the_dict(self, shelf):
        names = [p.name for p in store.find(Product, {"visible": True}, Product.stock > 0)]
        assert names == ["Rice 1kg", "Salt 500g"]

    def test_newest_first_and_limit(self, shelf):
        newest = store.find(Product, {}, newest_first=True, limit=2)
        assert [p.name for p in newest] == ["Salt 500g", "Sugar 1kg"]

    def test_enum_strings_are_coerced(self, make_account):
        make_account(account_type=AccountType.BANK)
        assert store.count_documents(Account, {"type": "bank"}) == 1

    def test_unknown_enum_value(self, make_account):
        make_account()
        with pytest.raises(ValidationError):
            store.find(Account, {"type": "vault"})

    def test_unknown_field(self, db_session):
        with pytest.raises(ValidationError):
            store.find_one(Product, {"colour": "red"})


class TestWrites:

    def test_increment_in_one_statement(self, shelf, stock_of):
        rice = shelf[0]
        assert store.update_one(Product, {"id": rice.id}, {"stock": Inc(-3)}) == 1
        assert stock_of(rice.id) == 1

    def test_guard_blocks_the_write(self, shelf, stock_of):
        rice = shelf[0]
        modified = store.update_one(Product, {"id": rice.id}, {"stock": Inc(-5)}, Product.stock >= 5)
        assert modified == 0
        assert stock_of(rice.id) == 4

    def test_update_one_touches_a_single_row(self, shelf):
        assert store.update_one(Product, {"visible": True}, {"reorder_level": 2}) == 1
        assert store.count_documents(Product, {"reorder_level": 2}) == 1

    def test_update_many_reports_the_count(self, shelf):
        assert store.update_many(Product, {"visible": True}, {"reorder_level": 2}) == 3

    def test_find_one_and_update_returns_post_write_values(self, shelf):
        salt = shelf[2]
        row = store.find_one_and_update(
            Product, {"id": salt.id}, {"stock": Inc(-2)}, Product.stock >= 2, returning=["stock"],
        )
        assert row.stock == 10

    def test_find_one_and_update_miss(self, shelf):
        sugar = shelf[1]
        row = store.find_one_and_update(
            Product, {"id": sugar.id}, {"stock": Inc(-1)}, Product.stock >= 1, returning=["stock"],
        )
        assert row is None

    def test_deletes_report_counts(self, shelf):
        assert store.delete_one(Product, {"stock": 0}) == 1
        assert store.delete_many(Product, {"visible": True}) == 2
        assert store.delete_many(Product, {"visible": True}) == 0

    def test_unknown_patch_field(self, shelf):
        with pytest.raises(ValidationError):
            store.update_one(Product, {"id": shelf[0].id}, {"colour": "red"})


class TestRetry:

    def test_lock_contention_is_retried(self, app):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE products", {}, Exception("database is locked"))
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_gives_up_after_the_last_attempt(self, app):
        def locked():
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(locked, attempts=2, backoff_base=0)
