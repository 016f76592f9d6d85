"""
workflow.py — Core Orchestration Logic for Checkout

This module turns a customer's cart into remote orders. The cart lives in the
local store, products, stock and orders live in the remote store, and there is
no transaction spanning both.

Workflow Overview:
1. Resolve the customer in the remote store by username
2. Load the cart lines in insertion order
3. Validate every line against live product data and stock
4. Create one remote order per line, recording each in the checkout ledger
5. Clear the checked-out lines and publish one notification per order

Failure policy (Saga without compensation):
    - Any validation failure aborts before the first order is created.
    - An order-creation failure stops the loop and leaves the cart as it is.
      Orders already created are not rolled back; they stay in the checkout
      ledger, so the next attempt reuses them instead of ordering again.
    - A line the store rejected outright leaves the ledger and is validated
      again on the next attempt. A line whose outcome is unknown (timeout, 5xx)
      stays pending and is re-sent with its original idempotency key.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import pika

from .cart_store import CartStore
from .clients import NotificationPublisher, StoreClient
from .database import CartLine, CheckoutLedgerEntry
from .errors import (
    ConcurrentModification,
    CustomerNotFound,
    EmptyCart,
    InsufficientStock,
    LineAlreadySubmitted,
    PartialCheckoutFailure,
    ProductNotFound,
    RemoteError,
    RemoteUnavailable,
)
from .models import CheckoutResult, OrderConfirmation

log = logging.getLogger(__name__)


@dataclass
class _PlannedLine:
    line: CartLine
    quantity: int
    entry: Optional[CheckoutLedgerEntry] = None


def _confirmation_from_ledger(entry: CheckoutLedgerEntry) -> OrderConfirmation:
    return OrderConfirmation(
        orderId=entry.order_key,
        productId=entry.product_key,
        productName=entry.product_name or "",
        quantity=entry.quantity,
        unitPrice=entry.unit_price,
        totalAmount=entry.total_amount,
        status=entry.status,
        reused=True
    )


def _validate_lines(store: StoreClient, lines: List[CartLine], ledger: dict, log_prefix: str) -> List[_PlannedLine]:
    """
    Re-fetches every product and checks live stock.

    Lines with a ledger entry were sent to the remote store by an earlier attempt
    and must still ask for the quantity that was sent. A committed line is reused
    without a lookup. A pending line (outcome unknown) is looked up again, but
    skips the stock check, because its own order may already have taken the stock.
    """
    plan = []
    for line in lines:
        entry = ledger.get(line.product_key)
        if entry is not None and entry.quantity != line.quantity:
            log.warning(
                f"{log_prefix} Aborted: {line.product_key} was sent with quantity {entry.quantity}, "
                f"the cart now asks for {line.quantity}."
            )
            raise LineAlreadySubmitted(line.product_key, entry.quantity, line.quantity, entry.order_key)

        if entry is not None and entry.is_committed:
            log.info(f"{log_prefix} {line.product_key} already ordered as {entry.order_key}.")
            plan.append(_PlannedLine(line=line, quantity=entry.quantity, entry=entry))
            continue

        product = store.get_product(line.product_key)
        if product is None:
            log.warning(f"{log_prefix} Aborted: product {line.product_key} not found.")
            raise ProductNotFound(line.product_key)

        if entry is not None:
            log.info(f"{log_prefix} {line.product_key}: earlier attempt has no known outcome, stock check skipped.")
        elif product.stockAvailable < line.quantity:
            log.warning(
                f"{log_prefix} Aborted: insufficient stock for {line.product_key} "
                f"(available {product.stockAvailable}, requested {line.quantity})."
            )
            raise InsufficientStock(line.product_key, product.stockAvailable, line.quantity, product.productName)

        plan.append(_PlannedLine(line=line, quantity=line.quantity, entry=entry))
    return plan


def process_checkout(
        customer_key: str,
        store: StoreClient,
        cart_store: CartStore,
        publisher: Optional[NotificationPublisher] = None
) -> CheckoutResult:
    """
    Executes the complete checkout for one customer.

    Args:
        customer_key (str): The customer's username; carts are keyed by it.
        store (StoreClient): Client for the remote store.
        cart_store (CartStore): Local cart and ledger repository.
        publisher (NotificationPublisher): Receives one order-created message per
            order after a successful checkout. Optional.

    Returns:
        CheckoutResult: The confirmations of all orders, in cart order.

    Raises:
        CustomerNotFound: If the username does not resolve remotely.
        EmptyCart: If the customer has no cart lines.
        ProductNotFound, InsufficientStock: If a line fails validation.
            No order has been created in this attempt.
        LineAlreadySubmitted: If a line sent by an earlier attempt changed quantity.
        PartialCheckoutFailure: If an order-creation call failed. Lists the orders
            that exist; the cart is unchanged and a retry will not re-order them.
        RemoteUnavailable: If the remote store failed during validation.

    Workflow Steps:
        Step 1 – Customer and cart:
            - Resolve the customer; load cart lines in insertion order.

        Step 2 – Validation:
            - Every line is validated before any order is created.

        Step 3 – Order creation:
            - A pending ledger entry (with an idempotency key) is written before
              each remote call and marked committed afterwards.
            - Committed entries from an earlier attempt are reused as they are.
            - Pending entries are re-sent with their original idempotency key.
            - A definitive rejection drops the pending entry; an unknown outcome
              keeps it.

        Step 4 – Completion:
            - Checked-out lines and their ledger entries are removed in one
              local transaction, then notifications are published.
    """
    log_prefix = f"[Customer: {customer_key}]"
    log.info(f"{log_prefix} Starting checkout.")

    # --- 1. Customer and cart ---
    customer = store.get_customer_by_username(customer_key)
    if customer is None:
        log.warning(f"{log_prefix} Aborted: customer not found.")
        raise CustomerNotFound(customer_key)

    lines = cart_store.list_lines(customer_key)
    if not lines:
        log.info(f"{log_prefix} Aborted: cart is empty.")
        raise EmptyCart(customer_key)

    log.info(f"{log_prefix} Checking out {len(lines)} line(s).")

    # --- 2. Validation ---
    ledger = cart_store.ledger_entries(customer_key)
    plan = _validate_lines(store, lines, ledger, log_prefix)

    # --- 3. Order creation ---
    confirmations = []
    for planned in plan:
        product_key = planned.line.product_key
        entry = planned.entry

        if entry is not None and entry.is_committed:
            confirmations.append(_confirmation_from_ledger(entry))
            continue

        try:
            if entry is None:
                entry = cart_store.record_pending(customer_key, product_key, planned.quantity)
            else:
                log.info(f"{log_prefix} Re-sending {product_key} with Idempotency-Key {entry.idempotency_key}.")

            order = store.create_order(
                customer.id, product_key, planned.quantity, idempotency_key=entry.idempotency_key
            )
        except RemoteError as e:
            if isinstance(e, RemoteUnavailable):
                log.error(
                    f"{log_prefix} Outcome unknown for {product_key}; it stays pending under "
                    f"Idempotency-Key {entry.idempotency_key}."
                )
            else:
                # Rejected outright, nothing was created: the next attempt validates the line afresh.
                cart_store.discard_pending(entry.idempotency_key)
            log.error(
                f"{log_prefix} Order creation failed for {product_key} after "
                f"{len(confirmations)} order(s). Cart left unchanged. {e}"
            )
            raise PartialCheckoutFailure(customer_key, confirmations, product_key, e) from e
        except ConcurrentModification as e:
            log.error(f"{log_prefix} Checkout stopped at {product_key}: {e}")
            raise PartialCheckoutFailure(customer_key, confirmations, product_key, e) from e

        cart_store.record_committed(entry.idempotency_key, order)
        confirmations.append(OrderConfirmation.from_order(order))

    # --- 4. Completion ---
    removed = cart_store.complete_checkout(
        customer_key,
        [p.line.id for p in plan],
        [p.line.product_key for p in plan]
    )
    log.info(f"{log_prefix} Checkout complete: {len(confirmations)} order(s), {removed} cart line(s) cleared.")

    if publisher is not None:
        for confirmation in confirmations:
            try:
                publisher.publish_order_created(customer.id, confirmation)
            except pika.exceptions.AMQPError as e:
                # The order exists; only the notification is lost.
                log.critical(f"{log_prefix}[Order: {confirmation.orderId}] Notification not sent: {e}")

    return CheckoutResult(
        customerKey=customer.id,
        orders=confirmations,
        totalAmount=round(sum(c.totalAmount for c in confirmations), 2)
    )
