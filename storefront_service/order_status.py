"""
order_status.py — Staff-side order management

Status changes on existing remote orders, order deletion and order listings.
Any status may be set to any other status; there are no automatic transitions.
Status writes use optimistic concurrency: the version token read with the
order must still be current when the new status is written.
"""

import logging
from typing import List, Optional

from .clients import StoreClient
from .errors import CustomerNotFound, InvalidStatus, OrderNotFound, RemoteError
from .models import Order, OrderStatus, StatusUpdateOutcome, StatusUpdateResult

log = logging.getLogger(__name__)


def parse_status(value: str) -> OrderStatus:
    """Maps a status literal to OrderStatus, rejecting anything outside the known set."""
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatus(value, OrderStatus.values())


def update_status(store: StoreClient, order_key: str, new_status: str,
                  version_token: Optional[str] = None) -> StatusUpdateResult:
    """
    Sets a new status on an existing order.

    Args:
        store (StoreClient): Client for the remote store.
        order_key (str): The order to change.
        new_status (str): One of the OrderStatus literals.
        version_token (str): Token from an earlier read. When omitted, the token of
            a fresh read is used.

    Returns:
        StatusUpdateResult: `updated`, or `concurrent_modification` when another
            writer changed the order since the token was issued. The caller has to
            re-fetch and retry.

    Raises:
        InvalidStatus: If new_status is not a known status.
        OrderNotFound: If the order does not exist.
        RemoteError: If the store did not return a version token for the order.
    """
    status = parse_status(new_status)
    log_prefix = f"[Order: {order_key}]"

    order = store.get_order(order_key)
    if order is None:
        raise OrderNotFound(order_key)

    token = version_token or order.versionToken
    if not token:
        log.error(f"{log_prefix} Store returned no version token, refusing an unchecked status write.")
        raise RemoteError(f"Store returned no version token for order {order_key}.")
    result = store.update_order_status(order_key, status.value, token)
    if result.outcome == StatusUpdateOutcome.UPDATED:
        log.info(f"{log_prefix} Status changed from {order.status} to {status.value}.")
    else:
        log.warning(f"{log_prefix} Status change to {status.value} lost to a concurrent update.")
    return result


def delete_order(store: StoreClient, order_key: str) -> bool:
    """Deletes an order. Deleting a missing order is not an error; returns whether it existed."""
    existed = store.delete_order(order_key)
    if existed:
        log.info(f"[Order: {order_key}] Order deleted.")
    else:
        log.info(f"[Order: {order_key}] Delete requested for missing order, nothing to do.")
    return existed


def get_order(store: StoreClient, order_key: str) -> Order:
    order = store.get_order(order_key)
    if order is None:
        raise OrderNotFound(order_key)
    return order


def list_orders(store: StoreClient) -> List[Order]:
    """All orders, newest first."""
    return sorted(store.list_orders(), key=lambda o: o.orderDateUtc, reverse=True)


def list_customer_orders(store: StoreClient, username: str) -> List[Order]:
    """Orders of one customer, newest first."""
    customer = store.get_customer_by_username(username)
    if customer is None:
        raise CustomerNotFound(username)
    return sorted(store.list_orders(customer.id), key=lambda o: o.orderDateUtc, reverse=True)
