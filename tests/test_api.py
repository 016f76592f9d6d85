"""API tests for the storefront endpoints via TestClient."""

from unittest import mock

import pytest
from fastapi.testclient import TestClient

from storefront_service.clients import NotificationPublisher
from storefront_service.main import app, get_publisher, get_session_factory, get_store_client


@pytest.fixture
def client(store_client, session_factory, publisher):
    app.dependency_overrides[get_store_client] = lambda: store_client
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_publisher] = lambda: publisher
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def stocked(remote, customer):
    remote.add_product("prod-a", "Alpha", 19.99, 5)
    remote.add_product("prod-b", "Beta", 4.0, 3)
    return remote


def _add(client, product_key, times=1, customer="alice"):
    for _ in range(times):
        response = client.post(f"/customers/{customer}/cart/items/{product_key}")
        assert response.status_code == 200
    return response


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestCartEndpoints:
    def test_add_and_view(self, client, stocked):
        response = _add(client, "prod-a", times=2)
        assert response.json()["quantity"] == 2

        view = client.get("/customers/alice/cart").json()
        assert view["items"][0]["productName"] == "Alpha"
        assert view["items"][0]["quantity"] == 2
        assert view["totalAmount"] == 39.98

    def test_add_unknown_product(self, client, stocked):
        response = client.post("/customers/alice/cart/items/nope")
        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "not_found"
        assert body["entity"] == "product"

    def test_remove_missing_is_not_an_error(self, client, stocked):
        response = client.delete("/customers/alice/cart/items/prod-a")
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_update_quantities_stock_exceeded(self, client, stocked):
        _add(client, "prod-a")
        _add(client, "prod-b")

        response = client.put("/customers/alice/cart", json={"items": [
            {"productId": "prod-a", "quantity": 3},
            {"productId": "prod-b", "quantity": 10},
        ]})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "insufficient_stock"
        assert body["available"] == 3
        assert body["requested"] == 10
        quantities = {i["productId"]: i["quantity"] for i in client.get("/customers/alice/cart").json()["items"]}
        assert quantities == {"prod-a": 3, "prod-b": 1}

    def test_update_quantities_rejects_bad_shape(self, client, stocked):
        response = client.put("/customers/alice/cart", json={"items": [{"productId": "prod-a"}]})
        assert response.status_code == 422


class TestCheckoutEndpoint:
    def test_checkout(self, client, stocked, publisher):
        _add(client, "prod-a", times=2)

        response = client.post("/customers/alice/checkout")

        assert response.status_code == 201
        body = response.json()
        assert len(body["orders"]) == 1
        assert body["orders"][0]["totalAmount"] == 39.98
        assert client.get("/customers/alice/cart").json()["items"] == []
        assert len(publisher.published) == 1

    def test_checkout_empty_cart(self, client, stocked):
        response = client.post("/customers/alice/checkout")
        assert response.status_code == 409
        assert response.json()["error"] == "empty_cart"

    def test_checkout_insufficient_stock(self, client, stocked):
        _add(client, "prod-a", times=2)
        _add(client, "prod-b", times=4)

        response = client.post("/customers/alice/checkout")

        assert response.status_code == 409
        assert response.json()["productKey"] == "prod-b"
        assert stocked.orders == {}
        assert len(client.get("/customers/alice/cart").json()["items"]) == 2

    def test_checkout_partial_failure(self, client, stocked):
        _add(client, "prod-a")
        _add(client, "prod-b")
        stocked.fail_next_order("prod-b")

        response = client.post("/customers/alice/checkout")

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "partial_checkout_failure"
        assert [o["productId"] for o in body["succeeded"]] == ["prod-a"]
        assert body["failedProductKey"] == "prod-b"

        retry = client.post("/customers/alice/checkout")
        assert retry.status_code == 201
        assert len(stocked.orders) == 2

    def test_submitted_line_quantity_change_is_refused(self, client, stocked):
        _add(client, "prod-a")
        stocked.lose_next_response("prod-a")
        assert client.post("/customers/alice/checkout").status_code == 502

        response = client.put("/customers/alice/cart", json={"items": [{"productId": "prod-a", "quantity": 2}]})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "line_already_submitted"
        assert (body["submittedQuantity"], body["requestedQuantity"]) == (1, 2)

        retry = client.post("/customers/alice/checkout")
        assert retry.status_code == 201
        assert len(stocked.orders) == 1


class TestOrderEndpoints:
    def _place_order(self, client):
        _add(client, "prod-a")
        return client.post("/customers/alice/checkout").json()["orders"][0]["orderId"]

    def test_listings(self, client, stocked):
        order_id = self._place_order(client)
        assert [o["id"] for o in client.get("/orders").json()] == [order_id]
        assert [o["id"] for o in client.get("/customers/alice/orders").json()] == [order_id]

    def test_details_and_status_update(self, client, stocked):
        order_id = self._place_order(client)
        token = client.get(f"/orders/{order_id}").json()["versionToken"]

        response = client.put(f"/orders/{order_id}/status", json={"status": "Shipped", "versionToken": token})
        assert response.status_code == 200
        assert response.json()["outcome"] == "updated"

        stale = client.put(f"/orders/{order_id}/status", json={"status": "Delivered", "versionToken": token})
        assert stale.status_code == 409
        assert stale.json()["error"] == "concurrent_modification"

    def test_invalid_status(self, client, stocked):
        order_id = self._place_order(client)
        response = client.put(f"/orders/{order_id}/status", json={"status": "Lost"})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_missing_order(self, client, stocked):
        assert client.get("/orders/ord-missing").status_code == 404

    def test_delete_twice(self, client, stocked):
        order_id = self._place_order(client)
        first = client.delete(f"/orders/{order_id}")
        second = client.delete(f"/orders/{order_id}")
        assert first.json()["deleted"] is True
        assert second.status_code == 200
        assert second.json()["deleted"] is False


class TestPublisherProvider:
    def test_each_request_gets_its_own_publisher(self):
        with mock.patch.object(NotificationPublisher, "close") as close:
            first, second = get_publisher(), get_publisher()
            assert next(first) is not next(second)

            first.close()
            second.close()

        assert close.call_count == 2
