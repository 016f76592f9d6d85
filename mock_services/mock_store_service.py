"""
mock_store_service.py — Mock Implementation of the Remote Attribute Store (REST API)

This module provides a simulated version of the remote store that holds customers,
products and orders. It exposes a FastAPI application with the endpoints the
storefront consumes and keeps all data in memory.

Behavior:
    • Orders carry a version; reads return it as ETag, status writes check If-Match
    • Order creation de-duplicates on the Idempotency-Key header
    • Order creation decrements stock and refuses orders above the available stock

Simulation Scenarios:
    • Product id containing "UNAVAILABLE" → order creation returns HTTP 503
    • fail_next_order(product_id)       → next order for it is rejected with 422, nothing is created
    • lose_next_response(product_id)    → next order for it is created, but 503 is returned

Endpoints:
    GET    /customers?username=…        — Customer lookup
    GET    /customers/{id}
    GET    /products/{id}
    GET    /orders?customerId=…
    GET    /orders/{id}
    POST   /orders
    PUT    /orders/{id}/status
    DELETE /orders/{id}

Port:
    Default: 8002 (HTTP)
"""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Response
from pydantic import BaseModel, Field

app = FastAPI(title="Mock Store Service")

ORDER_STATUSES = {"Submitted", "Processing", "Shipped", "Delivered", "Cancelled"}


class InMemoryStore:
    """Holds the mock data. Tests seed and reset it directly."""

    def __init__(self):
        self.lock = threading.Lock()
        self.reset()

    def reset(self):
        self.customers = {}
        self.products = {}
        self.orders = {}
        self.versions = {}
        self.idempotency_keys = {}
        self.fail_once = set()
        self.lose_once = set()
        self.create_calls = 0

    def add_customer(self, username: str, customer_id: Optional[str] = None, **fields) -> dict:
        customer = {
            "id": customer_id or f"cust-{uuid.uuid4().hex[:8]}",
            "name": fields.get("name", username),
            "surname": fields.get("surname", ""),
            "username": username,
            "email": fields.get("email", f"{username}@example.com"),
            "shippingAddress": fields.get("shippingAddress", ""),
        }
        self.customers[customer["id"]] = customer
        return customer

    def add_product(self, product_id: str, name: str, price: float, stock: int) -> dict:
        product = {
            "id": product_id,
            "productName": name,
            "description": "",
            "price": price,
            "stockAvailable": stock,
            "imageUrl": None,
        }
        self.products[product_id] = product
        return product

    def fail_next_order(self, product_id: str):
        self.fail_once.add(product_id)

    def lose_next_response(self, product_id: str):
        self.lose_once.add(product_id)

    def etag(self, order_id: str) -> str:
        return f'"{self.versions[order_id]}"'


store = InMemoryStore()


class OrderCreateRequest(BaseModel):
    customerId: str
    productId: str
    quantity: int = Field(..., gt=0)


class StatusRequest(BaseModel):
    status: str


# --- Customers ---
@app.get("/customers")
def list_customers(username: Optional[str] = None):
    customers = list(store.customers.values())
    if username is not None:
        customers = [c for c in customers if c["username"] == username]
    return customers


@app.get("/customers/{customer_id}")
def get_customer(customer_id: str):
    if customer_id not in store.customers:
        raise HTTPException(status_code=404, detail="Customer not found")
    return store.customers[customer_id]


# --- Products ---
@app.get("/products/{product_id}")
def get_product(product_id: str):
    if product_id not in store.products:
        raise HTTPException(status_code=404, detail="Product not found")
    return store.products[product_id]


# --- Orders ---
@app.get("/orders")
def list_orders(customerId: Optional[str] = None):
    orders = list(store.orders.values())
    if customerId is not None:
        orders = [o for o in orders if o["customerId"] == customerId]
    return orders


@app.get("/orders/{order_id}")
def get_order(order_id: str, response: Response):
    if order_id not in store.orders:
        raise HTTPException(status_code=404, detail="Order not found")
    response.headers["ETag"] = store.etag(order_id)
    return store.orders[order_id]


@app.post("/orders", status_code=201)
def create_order(
        request: OrderCreateRequest,
        response: Response,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
):
    """
    Creates an order and decrements the product's stock.

    A repeated Idempotency-Key returns the order created under it with HTTP 200.
    """
    logging.info(f"[STORE] Order request for {request.productId} (Idempotency: {idempotency_key})")

    with store.lock:
        store.create_calls += 1

        if idempotency_key and store.idempotency_keys.get(idempotency_key) in store.orders:
            order_id = store.idempotency_keys[idempotency_key]
            logging.info(f"[STORE] Repeated Idempotency-Key, returning order {order_id}.")
            response.status_code = 200
            response.headers["ETag"] = store.etag(order_id)
            return store.orders[order_id]

        # Scenario simulation
        if "UNAVAILABLE" in request.productId:
            raise HTTPException(status_code=503, detail="Store temporarily unavailable")
        if request.productId in store.fail_once:
            store.fail_once.discard(request.productId)
            raise HTTPException(status_code=422, detail="Order rejected")

        if request.customerId not in store.customers:
            raise HTTPException(status_code=404, detail="Customer not found")
        product = store.products.get(request.productId)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        if product["stockAvailable"] < request.quantity:
            raise HTTPException(
                status_code=409,
                detail={"errorCode": "insufficient_stock", "available": product["stockAvailable"]}
            )

        product["stockAvailable"] -= request.quantity
        order = {
            "id": f"ord-{uuid.uuid4().hex[:12]}",
            "customerId": request.customerId,
            "productId": product["id"],
            "productName": product["productName"],
            "quantity": request.quantity,
            "unitPrice": product["price"],
            "totalAmount": round(product["price"] * request.quantity, 2),
            "orderDateUtc": datetime.now(timezone.utc).isoformat(),
            "status": "Submitted",
        }
        store.orders[order["id"]] = order
        store.versions[order["id"]] = 1
        if idempotency_key:
            store.idempotency_keys[idempotency_key] = order["id"]

        if request.productId in store.lose_once:
            store.lose_once.discard(request.productId)
            logging.warning(f"[STORE] Order {order['id']} created, simulating lost response.")
            raise HTTPException(status_code=503, detail="Gateway timeout")

    response.headers["ETag"] = store.etag(order["id"])
    return order


@app.put("/orders/{order_id}/status")
def update_order_status(
        order_id: str,
        request: StatusRequest,
        response: Response,
        if_match: Optional[str] = Header(None, alias="If-Match")
):
    with store.lock:
        if order_id not in store.orders:
            raise HTTPException(status_code=404, detail="Order not found")
        if request.status not in ORDER_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status: {request.status}")
        if if_match is not None and if_match != store.etag(order_id):
            raise HTTPException(status_code=412, detail="Version token is stale")

        store.orders[order_id]["status"] = request.status
        store.versions[order_id] += 1
        response.headers["ETag"] = store.etag(order_id)
        return store.orders[order_id]


@app.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: str):
    with store.lock:
        if order_id not in store.orders:
            raise HTTPException(status_code=404, detail="Order not found")
        del store.orders[order_id]
        del store.versions[order_id]
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8002)
