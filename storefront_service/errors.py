"""
errors.py — Error Taxonomy of the Storefront Service

Every failure the cart and checkout logic can report is a subclass of
`StorefrontError`. Each class carries:
    • kind         — stable machine-readable error name used in API results
    • status_code  — HTTP status used by the API boundary
    • to_dict()    — structured details for the caller

Core code raises these exceptions; `main.py` converts them into structured
JSON results so nothing crosses the API boundary uncaught.
"""

from typing import List, Optional


class StorefrontError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        payload.update(self.details())
        return payload


# --- Not found ---
class NotFound(StorefrontError):
    kind = "not_found"
    status_code = 404
    entity = "resource"

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"{self.entity.capitalize()} '{key}' not found.")

    def details(self) -> dict:
        return {"entity": self.entity, "key": self.key}


class CustomerNotFound(NotFound):
    entity = "customer"


class ProductNotFound(NotFound):
    entity = "product"


class OrderNotFound(NotFound):
    entity = "order"


# --- Validation ---
class ValidationError(StorefrontError):
    kind = "validation_error"
    status_code = 400


class InvalidStatus(ValidationError):
    def __init__(self, status: str, allowed: List[str]):
        self.status = status
        self.allowed = allowed
        super().__init__(f"Invalid status: {status}")

    def details(self) -> dict:
        return {"status": self.status, "allowed": self.allowed}


# --- Stock ---
class InsufficientStock(StorefrontError):
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, product_key: str, available: int, requested: int, product_name: Optional[str] = None):
        self.product_key = product_key
        self.available = available
        self.requested = requested
        label = product_name or product_key
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}"
        )

    def details(self) -> dict:
        return {
            "productKey": self.product_key,
            "available": self.available,
            "requested": self.requested,
        }


class StockExceeded(InsufficientStock):
    """Raised by cart quantity updates that ask for more than the live stock."""


# --- Checkout ---
class EmptyCart(StorefrontError):
    kind = "empty_cart"
    status_code = 409

    def __init__(self, customer_key: str):
        self.customer_key = customer_key
        super().__init__("Your cart is empty.")


class PartialCheckoutFailure(StorefrontError):
    """
    An order-creation call failed after some lines were already ordered.

    `succeeded` holds the confirmations that exist on the remote side (they are
    recorded in the checkout ledger and will not be re-ordered on retry),
    `failed_product_key` names the line that could not be ordered.
    """
    kind = "partial_checkout_failure"
    status_code = 502

    def __init__(self, customer_key: str, succeeded: list, failed_product_key: str, cause: Exception):
        self.customer_key = customer_key
        self.succeeded = succeeded
        self.failed_product_key = failed_product_key
        self.cause = cause
        super().__init__(
            f"Checkout stopped at product {failed_product_key} after "
            f"{len(succeeded)} order(s) were created: {cause}"
        )

    def details(self) -> dict:
        return {
            "succeeded": [c.model_dump() for c in self.succeeded],
            "failedProductKey": self.failed_product_key,
        }


class LineAlreadySubmitted(StorefrontError):
    """
    A cart line whose order was already sent by an unfinished checkout no longer
    matches the quantity that was sent.

    The sent order either exists (`order_key` set) or its outcome is unknown, so
    the quantity cannot change silently. Restoring the submitted quantity or
    removing the line resolves it.
    """
    kind = "line_already_submitted"
    status_code = 409

    def __init__(self, product_key: str, submitted_quantity: int, requested_quantity: int,
                 order_key: Optional[str] = None):
        self.product_key = product_key
        self.submitted_quantity = submitted_quantity
        self.requested_quantity = requested_quantity
        self.order_key = order_key
        sent = f"ordered as {order_key}" if order_key else "sent to the store"
        super().__init__(
            f"Product {product_key} was already {sent} with quantity {submitted_quantity} "
            f"by an unfinished checkout; quantity {requested_quantity} cannot replace it. "
            f"Check out again or remove the item."
        )

    def details(self) -> dict:
        return {
            "productKey": self.product_key,
            "submittedQuantity": self.submitted_quantity,
            "requestedQuantity": self.requested_quantity,
            "orderKey": self.order_key,
        }


# --- Concurrency ---
class ConcurrentModification(StorefrontError):
    kind = "concurrent_modification"
    status_code = 409

    def __init__(self, order_key: str, message: Optional[str] = None):
        self.order_key = order_key
        super().__init__(
            message or f"Order {order_key} was modified by someone else. Reload it and try again."
        )

    def details(self) -> dict:
        return {"orderKey": self.order_key}


# --- Remote service ---
class RemoteError(StorefrontError):
    """The remote store answered, but not with something we can use."""
    kind = "remote_error"
    status_code = 502


class RemoteUnavailable(RemoteError):
    """Transport failure, timeout, or 5xx from the remote store."""
    kind = "remote_unavailable"
    status_code = 503
