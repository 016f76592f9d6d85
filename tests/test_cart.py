"""Tests for cart operations against the mock store."""

import pytest

from storefront_service.cart import CartManager
from storefront_service.errors import LineAlreadySubmitted, ProductNotFound, StockExceeded
from storefront_service.models import QuantityUpdate


@pytest.fixture
def manager(store_client, cart_store):
    return CartManager(store_client, cart_store)


def _quantities(cart_store, customer_key):
    return {line.product_key: line.quantity for line in cart_store.list_lines(customer_key)}


class TestAddToCart:
    def test_add_creates_line_with_quantity_one(self, manager, cart_store, remote):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        outcome = manager.add_to_cart("alice", "prod-a")
        assert outcome.success
        assert outcome.quantity == 1
        assert _quantities(cart_store, "alice") == {"prod-a": 1}

    def test_add_twice_yields_one_line_with_quantity_two(self, manager, cart_store, remote):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        manager.add_to_cart("alice", "prod-a")
        outcome = manager.add_to_cart("alice", "prod-a")

        lines = cart_store.list_lines("alice")
        assert len(lines) == 1
        assert lines[0].quantity == 2
        assert outcome.quantity == 2

    def test_add_does_not_check_stock(self, manager, cart_store, remote):
        remote.add_product("prod-a", "Alpha", 10.0, 0)
        outcome = manager.add_to_cart("alice", "prod-a")
        assert outcome.success
        assert _quantities(cart_store, "alice") == {"prod-a": 1}

    def test_add_unknown_product_raises(self, manager, cart_store, remote):
        with pytest.raises(ProductNotFound) as exc:
            manager.add_to_cart("alice", "missing")
        assert exc.value.key == "missing"
        assert cart_store.list_lines("alice") == []

    def test_carts_are_per_customer(self, manager, cart_store, remote):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        manager.add_to_cart("alice", "prod-a")
        manager.add_to_cart("bob", "prod-a")
        assert _quantities(cart_store, "alice") == {"prod-a": 1}
        assert _quantities(cart_store, "bob") == {"prod-a": 1}

    def test_lines_keep_insertion_order(self, manager, cart_store, remote):
        for key in ("prod-c", "prod-a", "prod-b"):
            remote.add_product(key, key, 1.0, 5)
            manager.add_to_cart("alice", key)
        manager.add_to_cart("alice", "prod-c")
        assert [l.product_key for l in cart_store.list_lines("alice")] == ["prod-c", "prod-a", "prod-b"]


class TestRemoveFromCart:
    def test_remove_existing_line(self, manager, cart_store, fill_cart):
        fill_cart("alice", [("prod-a", 2), ("prod-b", 1)])
        outcome = manager.remove_from_cart("alice", "prod-a")
        assert outcome.success
        assert _quantities(cart_store, "alice") == {"prod-b": 1}

    def test_remove_missing_line_is_not_fatal(self, manager, cart_store, fill_cart):
        fill_cart("alice", [("prod-b", 1)])
        outcome = manager.remove_from_cart("alice", "prod-a")
        assert outcome.success is False
        assert outcome.message == "Item not found in cart."
        assert _quantities(cart_store, "alice") == {"prod-b": 1}


class TestUpdateQuantities:
    def test_sets_quantity_within_stock(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        fill_cart("alice", [("prod-a", 1)])

        result = manager.update_quantities("alice", [QuantityUpdate(productId="prod-a", quantity=5)])

        assert [u.productId for u in result.updated] == ["prod-a"]
        assert _quantities(cart_store, "alice") == {"prod-a": 5}

    def test_zero_or_negative_removes_line(self, manager, cart_store, fill_cart):
        fill_cart("alice", [("prod-a", 3), ("prod-b", 2)])

        result = manager.update_quantities("alice", [
            QuantityUpdate(productId="prod-a", quantity=0),
            QuantityUpdate(productId="prod-b", quantity=-1),
        ])

        assert result.removed == ["prod-a", "prod-b"]
        assert cart_store.list_lines("alice") == []

    def test_stock_exceeded_stops_batch(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        remote.add_product("prod-b", "Beta", 10.0, 3)
        remote.add_product("prod-c", "Gamma", 10.0, 9)
        fill_cart("alice", [("prod-a", 1), ("prod-b", 1), ("prod-c", 1)])

        with pytest.raises(StockExceeded) as exc:
            manager.update_quantities("alice", [
                QuantityUpdate(productId="prod-a", quantity=2),
                QuantityUpdate(productId="prod-b", quantity=10),
                QuantityUpdate(productId="prod-c", quantity=4),
            ])

        assert exc.value.product_key == "prod-b"
        assert exc.value.available == 3
        assert exc.value.requested == 10
        # Earlier line committed, failing and later lines untouched
        assert _quantities(cart_store, "alice") == {"prod-a": 2, "prod-b": 1, "prod-c": 1}

    def test_lines_not_in_cart_are_skipped(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        fill_cart("alice", [("prod-a", 1)])

        result = manager.update_quantities("alice", [QuantityUpdate(productId="prod-x", quantity=2)])

        assert result.skipped == ["prod-x"]
        assert _quantities(cart_store, "alice") == {"prod-a": 1}

    def test_vanished_product_raises(self, manager, cart_store, fill_cart):
        fill_cart("alice", [("prod-gone", 1)])
        with pytest.raises(ProductNotFound):
            manager.update_quantities("alice", [QuantityUpdate(productId="prod-gone", quantity=2)])
        assert _quantities(cart_store, "alice") == {"prod-gone": 1}

    def test_submitted_line_keeps_its_quantity(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        remote.add_product("prod-b", "Beta", 10.0, 9)
        fill_cart("alice", [("prod-a", 1), ("prod-b", 2)])
        cart_store.record_pending("alice", "prod-b", 2)

        with pytest.raises(LineAlreadySubmitted) as exc:
            manager.update_quantities("alice", [
                QuantityUpdate(productId="prod-a", quantity=3),
                QuantityUpdate(productId="prod-b", quantity=5),
            ])

        assert (exc.value.submitted_quantity, exc.value.requested_quantity) == (2, 5)
        assert _quantities(cart_store, "alice") == {"prod-a": 3, "prod-b": 2}

    def test_submitted_quantity_can_be_restored(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 0)
        fill_cart("alice", [("prod-a", 3)])
        cart_store.record_pending("alice", "prod-a", 2)

        result = manager.update_quantities("alice", [QuantityUpdate(productId="prod-a", quantity=2)])

        assert [u.productId for u in result.updated] == ["prod-a"]
        assert _quantities(cart_store, "alice") == {"prod-a": 2}

    def test_submitted_line_can_still_be_removed(self, manager, cart_store, fill_cart):
        fill_cart("alice", [("prod-a", 2)])
        cart_store.record_pending("alice", "prod-a", 2)

        result = manager.update_quantities("alice", [QuantityUpdate(productId="prod-a", quantity=0)])

        assert result.removed == ["prod-a"]
        assert cart_store.ledger_entries("alice") == {}


class TestViewCart:
    def test_view_joins_live_product_data(self, manager, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 19.99, 5)
        remote.add_product("prod-b", "Beta", 5.0, 5)
        fill_cart("alice", [("prod-a", 2), ("prod-b", 1)])

        view = manager.view_cart("alice")

        assert [i.productName for i in view.items] == ["Alpha", "Beta"]
        assert view.items[0].lineTotal == 39.98
        assert view.totalAmount == 44.98
        assert view.missingProducts == []

    def test_missing_products_are_reported_not_deleted(self, manager, cart_store, remote, fill_cart):
        remote.add_product("prod-a", "Alpha", 10.0, 5)
        fill_cart("alice", [("prod-a", 1), ("prod-gone", 3)])

        view = manager.view_cart("alice")

        assert [i.productId for i in view.items] == ["prod-a"]
        assert view.missingProducts == ["prod-gone"]
        assert _quantities(cart_store, "alice") == {"prod-a": 1, "prod-gone": 3}

    def test_empty_cart(self, manager):
        view = manager.view_cart("nobody")
        assert view.items == []
        assert view.totalAmount == 0
