"""
HTTP API tests.

Engine outcomes come back as envelopes with status 200; only a body that is
not a JSON object (or a bad query-string value) is rejected with 400.
"""

import pytest

from storekeeper.models import Debt, Order
from storekeeper.services.document_store import store
from storekeeper.services.saga import enqueue_compensation

from conftest import BRANCH, CUSTOMER, USER


def cart_line(client, product, **overrides):
    body = {
        "branch_id": BRANCH,
        "user_id": USER,
        "product_id": product.id,
        "quantity": 2,
        "selling_price_cents": 1000,
        "type": "cart",
        "status": "cash",
        "number": "S-20",
    }
    body.update(overrides)
    return client.post("/api/sales/cart", json=body)


# =============================================================================
# SYSTEM
# =============================================================================

class TestHealth:

    def test_healthy(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["compensations"]["details"] == {"pending": 0, "failed": 0}

    def test_backlog_degrades(self, client, db_session):
        enqueue_compensation("add_to_cart", "remove_from_cart", {"sale_id": 1, "user_id": USER})
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "degraded"


# =============================================================================
# SALES
# =============================================================================

class TestSalesRoutes:

    def test_add_and_list(self, client, product):
        response = cart_line(client, product)
        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["message"]["holds_stock"] is True

        listed = client.get(f"/api/sales/cart?branch_id={BRANCH}&status=cash").get_json()
        assert [s["id"] for s in listed["message"]] == [body["message"]["id"]]

    def test_engine_failure_is_still_200(self, client, product):
        response = cart_line(client, product, quantity=99)
        assert response.status_code == 200
        assert response.get_json()["success"] is False

    def test_malformed_json_is_400(self, client, db_session):
        response = client.post("/api/sales/cart", data="{not json", content_type="application/json")
        assert response.status_code == 400
        assert response.get_json() == {"success": False, "message": "Invalid JSON payload"}

    def test_json_array_is_400(self, client, db_session):
        response = client.post("/api/sales/cart", json=[1, 2])
        assert response.status_code == 400

    def test_bad_query_value_is_400(self, client, db_session):
        response = client.get("/api/sales/cart?branch_id=main")
        assert response.status_code == 400

    def test_remove_and_delete(self, client, product, stock_of):
        first = cart_line(client, product).get_json()["message"]
        second = cart_line(client, product, status="credit", customer_id=CUSTOMER).get_json()["message"]
        assert stock_of(product.id) == 6

        removed = client.post("/api/sales/cart/remove", json={"user_id": USER, "id": first["id"]}).get_json()
        assert removed["success"] is True

        deleted = client.post("/api/sales/delete", json={"user_id": USER, "sales": [second["id"]]}).get_json()
        assert deleted["message"] == "1 sale(s) have been deleted"
        assert stock_of(product.id) == 10
        assert store.count_documents(Debt) == 0


# =============================================================================
# ORDERS
# =============================================================================

class TestOrderRoutes:

    def test_order_flow(self, client, make_product, stock_of):
        product = make_product(stock=20)
        quote = cart_line(client, product, status="invoice", quantity=4).get_json()["message"]

        saved = client.post("/api/sales/save", json={"branch_id": BRANCH, "user_id": USER, "sales": [quote["id"]]})
        assert saved.get_json()["message"] == "Proforma invoice has been created successfully"
        order_id = store.find_one(Order, {}).id

        for _ in range(2):
            confirmed = client.post("/api/orders/confirm", json={"user_id": USER, "id": order_id}).get_json()
            assert confirmed["success"] is True
        assert stock_of(product.id) == 16

        listed = client.get("/api/orders/?is_verified=true").get_json()
        assert [o["type"] for o in listed["message"]] == ["invoice"]

        deleted = client.post("/api/orders/delete", json={"user_id": USER, "id": order_id}).get_json()
        assert deleted == {"success": True, "message": "Invoice deleted successfully"}

    def test_create_order_rejects_short_stock(self, client, make_product):
        product = make_product(stock=3)
        quote = cart_line(client, product, status="invoice", quantity=5).get_json()["message"]

        body = client.post("/api/orders/", json={"branch_id": BRANCH, "user_id": USER, "sales": [quote["id"]]}).get_json()
        assert body["success"] is False
        assert body["details"]["available"] == 3
        assert store.count_documents(Order) == 0


# =============================================================================
# CATALOG
# =============================================================================

class TestCatalogRoutes:

    def test_product_purchase_and_journal(self, client, db_session):
        created = client.post("/api/products/", json={
            "branch_id": BRANCH, "user_id": USER, "name": "Tea leaves 250g", "stock": 5,
            "buying_price_cents": 200, "selling_price_cents": 350,
        }).get_json()
        product_id = created["message"]["id"]

        purchased = client.post("/api/purchases/", json={
            "branch_id": BRANCH, "user_id": USER, "product_id": product_id, "quantity": 3,
            "buying_price_cents": 200, "selling_price_cents": 350,
        }).get_json()
        assert purchased["success"] is True

        journal = client.get(f"/api/products/{product_id}/adjustments?limit=1").get_json()
        assert len(journal["message"]) == 1
        assert journal["message"][0]["after_adjustment"] == 8

    def test_update_product(self, client, product):
        body = client.post("/api/products/update", json={"user_id": USER, "id": product.id, "name": "Maize meal"}).get_json()
        assert body == {"success": True, "message": "Product has been updated"}


# =============================================================================
# MONEY
# =============================================================================

class TestMoneyRoutes:

    def test_settle_and_reverse(self, client, product, make_account):
        account = make_account()
        cart_line(client, product, status="credit", customer_id=CUSTOMER)
        debt = store.find_one(Debt, {})

        settled = client.post(
            f"/api/debts/{debt.id}/settlements",
            json={"user_id": USER, "total_amount_cents": 2000, "account_id": account.id},
        ).get_json()
        assert settled["success"] is True

        reversed_ = client.post(
            f"/api/debts/settlements/{settled['message']['id']}/reverse", json={"user_id": USER},
        ).get_json()
        assert reversed_["success"] is True

    @pytest.mark.parametrize("transaction_type,expected", [("deposit", 500), ("withdraw", -500)])
    def test_post_transaction(self, client, make_account, transaction_type, expected):
        account = make_account()
        body = client.post(
            f"/api/accounts/{account.id}/transactions",
            json={"branch_id": BRANCH, "user_id": USER, "type": transaction_type, "total_amount_cents": 500},
        ).get_json()
        assert body["success"] is True
        assert body["message"]["balance_delta_cents"] == expected

        reversed_ = client.post(
            f"/api/accounts/transactions/{body['message']['id']}/reverse", json={"user_id": USER},
        ).get_json()
        assert reversed_["success"] is True
