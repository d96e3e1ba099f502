"""
Integration tests for the cart, checkout, order items and payments.

Tests cover:
- Cart lines and totals
- Checkout from the cart and from explicit items (stock reservation)
- Cancellation returning stock
- Order status transitions
- Payments marking orders paid
- Ownership checks between customers
"""

from decimal import Decimal

import pytest

from tests.conftest import PASSWORD, auth_headers, login, register


def money(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def product(client, admin_token):
    category = client.post(
        "/api/categories", json={"name": "Audio"}, headers=auth_headers(admin_token)
    ).json()
    response = client.post(
        "/api/products",
        json={"name": "Headphones", "price": "100.00", "stock": 10, "category_id": category["id"]},
        headers=auth_headers(admin_token),
    )
    assert response.status_code == 201, response.text
    return response.json()


def stock_of(client, product_id) -> int:
    return client.get(f"/api/products/{product_id}").json()["stock"]


def place_order(client, token, product_id, quantity=2):
    response = client.post(
        "/api/orders",
        json={"items": [{"product_id": product_id, "quantity": quantity}], "shipping_address": "1 Main St"},
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# CART
# ============================================================================


class TestCart:

    def test_add_merges_lines(self, client, customer_token, product):
        headers = auth_headers(customer_token)

        client.post("/api/cart", json={"product_id": product["id"], "quantity": 1}, headers=headers)
        response = client.post("/api/cart", json={"product_id": product["id"], "quantity": 2}, headers=headers)

        assert response.status_code == 201
        cart = response.json()
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert money(cart["total"]) == Decimal("300.00")

    def test_update_and_remove(self, client, customer_token, product):
        headers = auth_headers(customer_token)
        client.post("/api/cart", json={"product_id": product["id"]}, headers=headers)

        updated = client.put(f"/api/cart/{product['id']}", json={"quantity": 4}, headers=headers)
        removed = client.delete(f"/api/cart/{product['id']}", headers=headers)

        assert updated.json()["items"][0]["quantity"] == 4
        assert removed.status_code == 204
        assert client.get("/api/cart", headers=headers).json()["items"] == []

    def test_remove_missing_line(self, client, customer_token, product):
        response = client.delete(f"/api/cart/{product['id']}", headers=auth_headers(customer_token))

        assert response.status_code == 404

    def test_cannot_add_more_than_stock(self, client, customer_token, product):
        response = client.post(
            "/api/cart",
            json={"product_id": product["id"], "quantity": 11},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 400

    def test_cart_requires_authentication(self, client):
        assert client.get("/api/cart").status_code == 401


# ============================================================================
# CHECKOUT
# ============================================================================


class TestCheckout:

    def test_checkout_cart(self, client, customer_token, product):
        headers = auth_headers(customer_token)
        client.post("/api/cart", json={"product_id": product["id"], "quantity": 3}, headers=headers)

        response = client.post("/api/orders", json={"shipping_address": "1 Main St"}, headers=headers)

        assert response.status_code == 201
        order = response.json()
        assert order["status"] == "Pending"
        assert money(order["total_amount"]) == Decimal("300.00")
        assert [(i["product_id"], i["quantity"]) for i in order["items"]] == [(product["id"], 3)]
        assert stock_of(client, product["id"]) == 7
        assert client.get("/api/cart", headers=headers).json()["items"] == []

    def test_checkout_empty_cart(self, client, customer_token):
        response = client.post("/api/orders", json={}, headers=auth_headers(customer_token))

        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"

    def test_explicit_items_leave_cart_alone(self, client, customer_token, product):
        headers = auth_headers(customer_token)
        client.post("/api/cart", json={"product_id": product["id"], "quantity": 1}, headers=headers)

        place_order(client, customer_token, product["id"], quantity=2)

        assert len(client.get("/api/cart", headers=headers).json()["items"]) == 1
        assert stock_of(client, product["id"]) == 8

    def test_insufficient_stock(self, client, customer_token, product):
        response = client.post(
            "/api/orders",
            json={"items": [{"product_id": product["id"], "quantity": 11}]},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 400
        assert "Insufficient stock" in response.json()["detail"]
        assert stock_of(client, product["id"]) == 10

    def test_unknown_product(self, client, customer_token):
        response = client.post(
            "/api/orders",
            json={"items": [{"product_id": 999, "quantity": 1}]},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Product 999 does not exist"

    def test_customers_see_only_their_orders(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])
        register(client, "other")
        other_token = login(client, "other", PASSWORD).json()["access_token"]

        assert client.get("/api/orders", headers=auth_headers(other_token)).json() == []
        assert client.get(f"/api/orders/{order['id']}", headers=auth_headers(other_token)).status_code == 403

    def test_admin_sees_all_orders(self, client, customer_token, admin_token, product):
        place_order(client, customer_token, product["id"])

        orders = client.get("/api/orders", headers=auth_headers(admin_token)).json()

        assert len(orders) == 1


# ============================================================================
# CANCELLATION AND STATUS
# ============================================================================


class TestOrderLifecycle:

    def test_cancel_restores_stock(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"], quantity=4)
        assert stock_of(client, product["id"]) == 6

        response = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(customer_token))

        assert response.status_code == 200
        assert response.json()["status"] == "Cancelled"
        assert stock_of(client, product["id"]) == 10

    def test_cancelled_order_cannot_be_cancelled_again(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])
        client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(customer_token))

        response = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(customer_token))

        assert response.status_code == 409
        assert stock_of(client, product["id"]) == 10

    def test_admin_moves_order_through_fulfilment(self, client, customer_token, admin_token, product):
        order = place_order(client, customer_token, product["id"])
        headers = auth_headers(admin_token)

        statuses = [
            client.put(f"/api/orders/{order['id']}/status", json={"status": s}, headers=headers).json()["status"]
            for s in ("Paid", "Shipped", "Delivered")
        ]

        assert statuses == ["Paid", "Shipped", "Delivered"]

    def test_invalid_transition(self, client, customer_token, admin_token, product):
        order = place_order(client, customer_token, product["id"])

        response = client.put(
            f"/api/orders/{order['id']}/status",
            json={"status": "Delivered"},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot change order status from Pending to Delivered"

    def test_customer_cannot_change_status(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])

        response = client.put(
            f"/api/orders/{order['id']}/status",
            json={"status": "Paid"},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 403


# ============================================================================
# ORDER ITEMS
# ============================================================================


class TestOrderItems:

    def test_add_item_to_pending_order(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"], quantity=1)

        response = client.post(
            f"/api/orders/{order['id']}/items",
            json={"product_id": product["id"], "quantity": 2},
            headers=auth_headers(customer_token),
        )
        refreshed = client.get(f"/api/orders/{order['id']}", headers=auth_headers(customer_token)).json()

        assert response.status_code == 201
        assert response.json()["quantity"] == 3
        assert money(refreshed["total_amount"]) == Decimal("300.00")
        assert stock_of(client, product["id"]) == 7

    def test_change_and_delete_item(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"], quantity=2)
        item_id = order["items"][0]["id"]
        headers = auth_headers(customer_token)

        changed = client.put(f"/api/order-items/{item_id}", json={"quantity": 5}, headers=headers)
        assert changed.json()["quantity"] == 5
        assert stock_of(client, product["id"]) == 5

        deleted = client.delete(f"/api/order-items/{item_id}", headers=headers)
        assert deleted.status_code == 204
        assert stock_of(client, product["id"]) == 10

    def test_items_of_cancelled_order_are_frozen(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])
        client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(customer_token))

        response = client.post(
            f"/api/orders/{order['id']}/items",
            json={"product_id": product["id"], "quantity": 1},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 409


# ============================================================================
# PAYMENTS
# ============================================================================


class TestPayments:

    def test_completed_payment_marks_order_paid(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"], quantity=2)
        headers = auth_headers(customer_token)

        response = client.post(
            f"/api/orders/{order['id']}/payments",
            json={"method": "CreditCard", "transaction_id": "txn-123"},
            headers=headers,
        )

        assert response.status_code == 201
        payment = response.json()
        assert payment["status"] == "Completed"
        assert money(payment["amount"]) == Decimal("200.00")
        assert payment["paid_at"] is not None
        assert client.get(f"/api/orders/{order['id']}", headers=headers).json()["status"] == "Paid"

    def test_paid_order_cannot_be_cancelled_by_customer(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])
        client.post(
            f"/api/orders/{order['id']}/payments",
            json={"method": "PayPal", "transaction_id": "txn-1"},
            headers=auth_headers(customer_token),
        )

        response = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(customer_token))

        assert response.status_code == 409

    def test_admin_cancel_of_paid_order_refunds_payment(self, client, customer_token, admin_token, product):
        order = place_order(client, customer_token, product["id"], quantity=3)
        client.post(
            f"/api/orders/{order['id']}/payments",
            json={"method": "CreditCard", "transaction_id": "txn-55"},
            headers=auth_headers(customer_token),
        )

        response = client.post(f"/api/orders/{order['id']}/cancel", headers=auth_headers(admin_token))

        assert response.status_code == 200
        assert response.json()["status"] == "Cancelled"
        payments = client.get(f"/api/orders/{order['id']}/payments", headers=auth_headers(customer_token)).json()
        assert [p["status"] for p in payments] == ["Refunded"]
        assert stock_of(client, product["id"]) == 10

    def test_pending_payment_completed_by_admin(self, client, customer_token, admin_token, product):
        order = place_order(client, customer_token, product["id"])
        payment = client.post(
            f"/api/orders/{order['id']}/payments",
            json={"method": "BankTransfer"},
            headers=auth_headers(customer_token),
        ).json()
        assert payment["status"] == "Pending"

        response = client.put(
            f"/api/payments/{payment['id']}/status",
            json={"status": "Completed", "transaction_id": "bank-42"},
            headers=auth_headers(admin_token),
        )

        assert response.json()["status"] == "Completed"
        order_now = client.get(f"/api/orders/{order['id']}", headers=auth_headers(customer_token)).json()
        assert order_now["status"] == "Paid"

    def test_amount_must_match_total(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"], quantity=2)

        response = client.post(
            f"/api/orders/{order['id']}/payments",
            json={"method": "CreditCard", "amount": "150.00", "transaction_id": "txn-9"},
            headers=auth_headers(customer_token),
        )

        assert response.status_code == 400

    def test_list_payments(self, client, customer_token, product):
        order = place_order(client, customer_token, product["id"])
        headers = auth_headers(customer_token)
        client.post(f"/api/orders/{order['id']}/payments", json={"method": "CashOnDelivery"}, headers=headers)

        payments = client.get(f"/api/orders/{order['id']}/payments", headers=headers).json()

        assert [p["method"] for p in payments] == ["CashOnDelivery"]
