"""
This module provides communication clients for the external systems used by the storefront:
- Remote attribute store for customers, products and orders (REST API)
- Order notification queue (RabbitMQ)
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import json
import logging
import os
import time
import uuid
from typing import List, Optional

import httpx
import pika

from .errors import OrderNotFound, RemoteError, RemoteUnavailable
from .models import Customer, Order, Product, StatusUpdateOutcome, StatusUpdateResult

# Service addresses (normally from env vars)
STORE_SERVICE_URL = os.environ.get("STORE_SERVICE_URL", "http://store_service:8002")
STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5.0"))
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "storefront")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "storefront")
QUEUE_ORDER_NOTIFICATIONS = os.environ.get("QUEUE_ORDER_NOTIFICATIONS", "order-notifications")

log = logging.getLogger(__name__)


# --- Store Client (REST) ---
class StoreClient:
    """
    Client for the remote attribute store (REST API).
    Reads customers and products, creates orders and changes their status.

    Reads return None when the record does not exist. Transport failures and 5xx
    replies raise RemoteUnavailable, any other unexpected reply raises RemoteError.
    """
    def __init__(self, base_url: str = STORE_SERVICE_URL, client: Optional[httpx.Client] = None):
        """
        Initializes the HTTP client with proper timeout configuration.
        An already configured httpx.Client may be passed instead.
        """
        if client is None:
            timeout_config = httpx.Timeout(STORE_TIMEOUT_SECONDS, read=8.0)
            client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = client

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def _request(self, method: str, url: str, log_prefix: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            log.error(f"{log_prefix} Store timeout on {method} {url}. Outcome unknown.")
            raise RemoteUnavailable(f"Store timed out on {method} {url}") from e
        except httpx.TransportError as e:
            log.error(f"{log_prefix} Store unreachable on {method} {url}: {e}")
            raise RemoteUnavailable(f"Store unreachable: {e}") from e

        if response.status_code >= 500:
            log.error(f"{log_prefix} Store error on {method} {url}: HTTP {response.status_code}")
            raise RemoteUnavailable(f"Store returned HTTP {response.status_code} on {method} {url}")
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response, log_prefix: str):
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = response.text
            log.warning(f"{log_prefix} Store rejected request (HTTP {response.status_code}): {detail}")
            raise RemoteError(f"Store rejected request (HTTP {response.status_code}): {detail}") from e

    # --- Products ---
    def get_product(self, product_key: str) -> Optional[Product]:
        log_prefix = f"[Product: {product_key}]"
        response = self._request("GET", f"/products/{product_key}", log_prefix)
        if response.status_code == 404:
            return None
        self._raise_for_status(response, log_prefix)
        return Product.model_validate(response.json())

    # --- Customers ---
    def get_customer(self, customer_key: str) -> Optional[Customer]:
        log_prefix = f"[Customer: {customer_key}]"
        response = self._request("GET", f"/customers/{customer_key}", log_prefix)
        if response.status_code == 404:
            return None
        self._raise_for_status(response, log_prefix)
        return Customer.model_validate(response.json())

    def get_customer_by_username(self, username: str) -> Optional[Customer]:
        log_prefix = f"[Customer: {username}]"
        response = self._request("GET", "/customers", log_prefix, params={"username": username})
        self._raise_for_status(response, log_prefix)
        for item in response.json():
            customer = Customer.model_validate(item)
            if customer.username == username:
                return customer
        return None

    # --- Orders ---
    def list_orders(self, customer_key: Optional[str] = None) -> List[Order]:
        params = {"customerId": customer_key} if customer_key else None
        response = self._request("GET", "/orders", "[Orders]", params=params)
        self._raise_for_status(response, "[Orders]")
        return [Order.model_validate(item) for item in response.json()]

    def get_order(self, order_key: str) -> Optional[Order]:
        """
        Fetches a single order.
        Returns:
            Order: The order with `versionToken` set from the ETag header, or None.
        """
        log_prefix = f"[Order: {order_key}]"
        response = self._request("GET", f"/orders/{order_key}", log_prefix)
        if response.status_code == 404:
            return None
        self._raise_for_status(response, log_prefix)
        order = Order.model_validate(response.json())
        order.versionToken = response.headers.get("ETag")
        return order

    def create_order(self, customer_key: str, product_key: str, quantity: int,
                     idempotency_key: Optional[str] = None) -> Order:
        """
        Creates a new order via the store REST API.
        Args:
            customer_key (str): Remote customer id.
            product_key (str): Remote product id.
            quantity (int): Ordered quantity.
            idempotency_key (str): Key the store uses to de-duplicate retries.
                A fresh one is generated when omitted.
        Returns:
            Order: The created order (or the one created earlier under the same key).
        Raises:
            RemoteUnavailable: On timeout, connection failure or a 5xx reply.
                The order may or may not exist; retry with the same key.
            RemoteError: If the store rejects the order (e.g. stock ran out).
        """
        idempotency_key = idempotency_key or str(uuid.uuid4())
        log_prefix = f"[Customer: {customer_key}][Product: {product_key}]"
        payload = {
            "customerId": customer_key,
            "productId": product_key,
            "quantity": quantity
        }
        headers = {"Idempotency-Key": idempotency_key}

        response = self._request("POST", "/orders", log_prefix, json=payload, headers=headers)
        self._raise_for_status(response, log_prefix)
        order = Order.model_validate(response.json())
        order.versionToken = response.headers.get("ETag")
        log.info(f"{log_prefix} Order {order.id} created (Idempotency-Key: {idempotency_key}).")
        return order

    def update_order_status(self, order_key: str, status: str, version_token: Optional[str]) -> StatusUpdateResult:
        """
        Writes a new status using optimistic concurrency.
        Returns:
            StatusUpdateResult: outcome `updated` with the new version token, or
                `concurrent_modification` when the token is stale (HTTP 412).
        Raises:
            OrderNotFound: If the order does not exist.
        """
        log_prefix = f"[Order: {order_key}]"
        headers = {"If-Match": version_token} if version_token else {}
        response = self._request(
            "PUT", f"/orders/{order_key}/status", log_prefix,
            json={"status": status}, headers=headers
        )
        if response.status_code == 404:
            raise OrderNotFound(order_key)
        if response.status_code == 412:
            log.warning(f"{log_prefix} Status update rejected, version token {version_token} is stale.")
            return StatusUpdateResult(
                outcome=StatusUpdateOutcome.CONFLICT, orderId=order_key, status=status
            )
        self._raise_for_status(response, log_prefix)
        return StatusUpdateResult(
            outcome=StatusUpdateOutcome.UPDATED,
            orderId=order_key,
            status=response.json()["status"],
            versionToken=response.headers.get("ETag")
        )

    def delete_order(self, order_key: str) -> bool:
        """Deletes an order. Returns False if it did not exist."""
        log_prefix = f"[Order: {order_key}]"
        response = self._request("DELETE", f"/orders/{order_key}", log_prefix)
        if response.status_code == 404:
            return False
        self._raise_for_status(response, log_prefix)
        return True


# --- Notification Publisher (MQ) ---
class NotificationPublisher:
    """
    Publisher for the order notification queue (RabbitMQ).
    Sends one message per created order and manages the MQ connection.
    """
    def __init__(self, host: str = RABBITMQ_HOST, queue: str = QUEUE_ORDER_NOTIFICATIONS):
        """Stores the connection settings. The connection is opened on first publish."""
        self.host = host
        self.queue = queue
        self.connection = None
        self.channel = None

    def _connect(self):
        """
        Establishes a RabbitMQ connection and declares the notification queue.
        Raises:
            pika.exceptions.AMQPConnectionError: If the connection fails.
        """
        try:
            credentials = pika.PlainCredentials(RABBITMQ_USER, RABBITMQ_PASSWORD)
            self.connection = pika.BlockingConnection(
                pika.ConnectionParameters(host=self.host, credentials=credentials, heartbeat=60)
            )
            self.channel = self.connection.channel()
            self.channel.queue_declare(queue=self.queue, durable=True)
            log.info(f"Notification publisher connected to RabbitMQ (queue '{self.queue}').")
        except pika.exceptions.AMQPConnectionError as e:
            log.critical(f"Cannot connect to RabbitMQ for order notifications: {e}")
            raise

    def publish_order_created(self, customer_key: str, confirmation):
        """
        Sends an order-created message to the notification queue.
        Args:
            customer_key (str): Remote customer id the order belongs to.
            confirmation (OrderConfirmation): The created order.
        Raises:
            pika.exceptions.AMQPError: If message publishing fails.
        """
        order_id = confirmation.orderId
        message = {
            "notificationId": str(uuid.uuid4()),
            "orderId": order_id,
            "customerId": customer_key,
            "productId": confirmation.productId,
            "quantity": confirmation.quantity,
            "totalAmount": confirmation.totalAmount,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
        try:
            if not self.connection or self.connection.is_closed:
                self._connect()

            self.channel.basic_publish(
                exchange='',
                routing_key=self.queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2)  # persistent
            )
            log.info(f"[Order: {order_id}] Order notification published.")
        except pika.exceptions.AMQPError as e:
            log.error(f"[Order: {order_id}] Failed to publish order notification: {e}")
            raise

    def close(self):
        if self.connection and self.connection.is_open:
            self.connection.close()
