import os

os.environ.setdefault("LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient

from mock_services.mock_store_service import app as store_app, store as mock_store
from storefront_service.cart_store import CartStore
from storefront_service.clients import StoreClient
from storefront_service.database import create_session_factory


class RecordingPublisher:
    """Stands in for the RabbitMQ publisher and keeps what would have been sent."""

    def __init__(self):
        self.published = []

    def publish_order_created(self, customer_key, confirmation):
        self.published.append((customer_key, confirmation))

    def close(self):
        pass


@pytest.fixture
def remote():
    mock_store.reset()
    yield mock_store
    mock_store.reset()


@pytest.fixture
def store_client(remote):
    client = StoreClient(client=TestClient(store_app))
    yield client
    client.close()


@pytest.fixture
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{tmp_path / 'cart.db'}")


@pytest.fixture
def cart_store(session_factory):
    return CartStore(session_factory)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def customer(remote):
    return remote.add_customer("alice", customer_id="cust-alice")


@pytest.fixture
def fill_cart(cart_store):
    """Puts (product_key, quantity) pairs into a cart in the given order."""
    def _fill(customer_key, lines):
        for product_key, quantity in lines:
            cart_store.add_or_increment(customer_key, product_key)
            cart_store.set_quantity(customer_key, product_key, quantity)
    return _fill
