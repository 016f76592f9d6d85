"""
main.py — FastAPI Entry Point for the Storefront Service

This module provides the REST API for the storefront's cart, checkout and
order management. Authentication happens upstream: the customer's username
arrives explicitly in the path and is never read from ambient session state.

Responsibilities:
    • Cart operations (add, remove, batch quantity update, view)
    • Checkout of the full cart into remote orders
    • Staff order management (list, details, status change, delete)
    • Structured error results for every StorefrontError
    • Provide system health information
"""

from functools import lru_cache
from typing import List

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .cart import CartManager
from .cart_store import CartStore
from .clients import NotificationPublisher, StoreClient
from .database import create_session_factory
from .errors import ConcurrentModification, StorefrontError
from .logging_config import get_logger, setup_logging
from .models import (
    CartOutcome,
    CartView,
    CheckoutResult,
    Order,
    StatusUpdateOutcome,
    StatusUpdateRequest,
    StatusUpdateResult,
    UpdateQuantitiesRequest,
    UpdateQuantitiesResult,
)
from . import order_status
from .workflow import process_checkout

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Storefront Service")


# Dependency providers (overridden in tests)
@lru_cache
def get_store_client() -> StoreClient:
    return StoreClient()


@lru_cache
def get_session_factory():
    return create_session_factory()


def get_publisher():
    """One publisher per request; pika connections must not be shared between threads."""
    publisher = NotificationPublisher()
    try:
        yield publisher
    finally:
        publisher.close()


def get_cart_store(session_factory=Depends(get_session_factory)) -> CartStore:
    return CartStore(session_factory)


def get_cart_manager(
        store: StoreClient = Depends(get_store_client),
        cart_store: CartStore = Depends(get_cart_store)
) -> CartManager:
    return CartManager(store, cart_store)


@app.on_event("startup")
def on_startup():
    log.info("Storefront service starting...")


@app.on_event("shutdown")
def on_shutdown():
    get_store_client().close()
    log.info("Storefront service stopped.")


# Error results
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """
    Converts every StorefrontError into a structured JSON result:
    {"success": false, "error": <kind>, "message": ..., <details>}.
    """
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.kind} - {exc.message}")
    else:
        log.info(f"{request.method} {request.url.path} rejected: {exc.kind} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


# Cart
@app.get("/customers/{customer}/cart", response_model=CartView)
def view_cart(customer: str, manager: CartManager = Depends(get_cart_manager)):
    return manager.view_cart(customer)


@app.post("/customers/{customer}/cart/items/{product_key}", response_model=CartOutcome)
def add_to_cart(customer: str, product_key: str, manager: CartManager = Depends(get_cart_manager)):
    return manager.add_to_cart(customer, product_key)


@app.delete("/customers/{customer}/cart/items/{product_key}", response_model=CartOutcome)
def remove_from_cart(customer: str, product_key: str, manager: CartManager = Depends(get_cart_manager)):
    """A product that is not in the cart yields success=false with HTTP 200."""
    return manager.remove_from_cart(customer, product_key)


@app.put("/customers/{customer}/cart", response_model=UpdateQuantitiesResult)
def update_quantities(
        customer: str,
        body: UpdateQuantitiesRequest,
        manager: CartManager = Depends(get_cart_manager)
):
    return manager.update_quantities(customer, body.items)


# Checkout
@app.post("/customers/{customer}/checkout", status_code=201, response_model=CheckoutResult)
def checkout(
        customer: str,
        store: StoreClient = Depends(get_store_client),
        cart_store: CartStore = Depends(get_cart_store),
        publisher: NotificationPublisher = Depends(get_publisher)
):
    """
    Converts the customer's whole cart into orders.

    Returns 201 with one confirmation per cart line. On failure the cart is left
    as it was and the error result says why; a partial_checkout_failure result
    lists the orders that were already created.
    """
    return process_checkout(customer, store, cart_store, publisher)


# Orders
@app.get("/customers/{customer}/orders", response_model=List[Order])
def my_orders(customer: str, store: StoreClient = Depends(get_store_client)):
    return order_status.list_customer_orders(store, customer)


@app.get("/orders", response_model=List[Order])
def list_orders(store: StoreClient = Depends(get_store_client)):
    return order_status.list_orders(store)


@app.get("/orders/{order_key}", response_model=Order)
def order_details(order_key: str, store: StoreClient = Depends(get_store_client)):
    return order_status.get_order(store, order_key)


@app.put("/orders/{order_key}/status", response_model=StatusUpdateResult)
def update_order_status(
        order_key: str,
        body: StatusUpdateRequest,
        store: StoreClient = Depends(get_store_client)
):
    result = order_status.update_status(store, order_key, body.status, body.versionToken)
    if result.outcome == StatusUpdateOutcome.CONFLICT:
        raise ConcurrentModification(order_key)
    return result


@app.delete("/orders/{order_key}")
def delete_order(order_key: str, store: StoreClient = Depends(get_store_client)):
    existed = order_status.delete_order(store, order_key)
    return {"success": True, "orderId": order_key, "deleted": existed}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Can be used by monitoring systems or container orchestrators
    (e.g., Docker, Kubernetes) to verify that the service is running.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}
