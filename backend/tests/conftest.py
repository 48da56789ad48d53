"""
Pytest fixtures for storekeeper engine tests.

Provides the application on an in-memory database, a per-test table wipe,
product/account factories and the test client.
"""

import pytest

from storekeeper import create_app
from storekeeper.enums import AccountType, AdjustmentSource
from storekeeper.extensions import db
from storekeeper.models import Account, Product
from storekeeper.services import stock_service

BRANCH = 1
USER = 7
CUSTOMER = 42
SUPPLIER = 9


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test; the schema is kept."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Product factory. Opening stock goes through the stock ledger so the
    adjustment journal replays to the counter.
    """
    def _make(name="Maize flour 2kg", stock=10, buying_price_cents=800, selling_price_cents=1000, branch_id=BRANCH):
        product = Product(
            branch_id=branch_id,
            name=name,
            stock=0,
            quantity=0,
            buying_price_cents=buying_price_cents,
            selling_price_cents=selling_price_cents,
            created_by=USER,
        )
        db_session.add(product)
        db_session.commit()
        if stock:
            stock_service.increment(
                product.id,
                stock,
                branch_id=branch_id,
                user_id=USER,
                source=AdjustmentSource.USER,
                description="Opening stock",
            )
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product()


@pytest.fixture(scope='function')
def make_account(db_session):
    def _make(name="Cash drawer", account_type=AccountType.CASH, balance_cents=0, disabled=False, branch_id=BRANCH):
        account = Account(
            branch_id=branch_id,
            name=name,
            type=account_type,
            balance_cents=balance_cents,
            disabled=disabled,
            created_by=USER,
        )
        db_session.add(account)
        db_session.commit()
        return account

    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Current stock of a product, read straight from the database."""
    def _stock(product_id):
        db_session.expire_all()
        return db_session.get(Product, product_id).stock

    return _stock
