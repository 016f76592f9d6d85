"""
cart_store.py — Repository over the local cart tables

All reads and writes of cart lines and checkout ledger entries go through
`CartStore`. Every method runs in its own short transaction; the only
multi-row write is `complete_checkout`, which removes the processed cart lines
and their ledger entries together.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .database import CartLine, CheckoutLedgerEntry
from .errors import ConcurrentModification

log = logging.getLogger(__name__)


class CartStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # --- Cart lines ---
    def get_line(self, customer_key: str, product_key: str) -> Optional[CartLine]:
        with self.session_factory() as session:
            return session.scalars(
                select(CartLine).where(
                    CartLine.customer_key == customer_key,
                    CartLine.product_key == product_key,
                )
            ).first()

    def list_lines(self, customer_key: str) -> List[CartLine]:
        """Returns the customer's cart lines in insertion order."""
        with self.session_factory() as session:
            return list(session.scalars(
                select(CartLine).where(CartLine.customer_key == customer_key).order_by(CartLine.id)
            ))

    def add_or_increment(self, customer_key: str, product_key: str) -> CartLine:
        """
        Adds one unit of a product to the cart.

        Creates the line with quantity 1 or increments an existing one. If a
        concurrent request inserted the same line first, the unique constraint
        fires and the increment is retried once.
        """
        try:
            return self._add_or_increment(customer_key, product_key)
        except IntegrityError:
            log.info(f"[Customer: {customer_key}] Concurrent add for {product_key}, retrying as increment.")
            return self._add_or_increment(customer_key, product_key)

    def _add_or_increment(self, customer_key: str, product_key: str) -> CartLine:
        with self.session_factory.begin() as session:
            line = session.scalars(
                select(CartLine).where(
                    CartLine.customer_key == customer_key,
                    CartLine.product_key == product_key,
                )
            ).first()
            if line is not None:
                line.quantity += 1
            else:
                line = CartLine(customer_key=customer_key, product_key=product_key, quantity=1)
                session.add(line)
            session.flush()
            return line

    def set_quantity(self, customer_key: str, product_key: str, quantity: int) -> bool:
        """Sets the quantity of an existing line. Returns False if there is no such line."""
        with self.session_factory.begin() as session:
            line = session.scalars(
                select(CartLine).where(
                    CartLine.customer_key == customer_key,
                    CartLine.product_key == product_key,
                )
            ).first()
            if line is None:
                return False
            line.quantity = quantity
            return True

    def delete_line(self, customer_key: str, product_key: str) -> bool:
        """
        Deletes a line and any ledger entry left for it by a failed checkout,
        so adding the product again later leads to a new order.
        Returns False if there was nothing to delete.
        """
        with self.session_factory.begin() as session:
            result = session.execute(
                delete(CartLine).where(
                    CartLine.customer_key == customer_key,
                    CartLine.product_key == product_key,
                )
            )
            session.execute(
                delete(CheckoutLedgerEntry).where(
                    CheckoutLedgerEntry.customer_key == customer_key,
                    CheckoutLedgerEntry.product_key == product_key,
                )
            )
            return result.rowcount > 0

    # --- Checkout ledger ---
    def ledger_entries(self, customer_key: str) -> Dict[str, CheckoutLedgerEntry]:
        """Returns the customer's ledger entries keyed by product key."""
        with self.session_factory() as session:
            entries = session.scalars(
                select(CheckoutLedgerEntry).where(CheckoutLedgerEntry.customer_key == customer_key)
            )
            return {entry.product_key: entry for entry in entries}

    def get_ledger_entry(self, customer_key: str, product_key: str) -> Optional[CheckoutLedgerEntry]:
        with self.session_factory() as session:
            return session.scalars(
                select(CheckoutLedgerEntry).where(
                    CheckoutLedgerEntry.customer_key == customer_key,
                    CheckoutLedgerEntry.product_key == product_key,
                )
            ).first()

    def record_pending(self, customer_key: str, product_key: str, quantity: int) -> CheckoutLedgerEntry:
        """
        Persists a pending ledger entry before the remote order-creation call.
        The generated idempotency key is reused by every retry of this line.

        Raises:
            ConcurrentModification: If another checkout recorded this line first.
        """
        try:
            with self.session_factory.begin() as session:
                entry = CheckoutLedgerEntry(
                    customer_key=customer_key,
                    product_key=product_key,
                    quantity=quantity,
                    idempotency_key=str(uuid.uuid4()),
                )
                session.add(entry)
                session.flush()
                return entry
        except IntegrityError as e:
            log.warning(f"[Customer: {customer_key}] {product_key} is already being checked out by another request.")
            raise ConcurrentModification(
                product_key, f"Product {product_key} is already being checked out by another request."
            ) from e

    def record_committed(self, idempotency_key: str, order) -> CheckoutLedgerEntry:
        """Marks a pending entry as committed with the order the remote store created."""
        with self.session_factory.begin() as session:
            entry = session.scalars(
                select(CheckoutLedgerEntry).where(CheckoutLedgerEntry.idempotency_key == idempotency_key)
            ).one()
            entry.order_key = order.id
            entry.product_name = order.productName
            entry.unit_price = order.unitPrice
            entry.total_amount = order.totalAmount
            entry.status = order.status
            return entry

    def discard_pending(self, idempotency_key: str) -> bool:
        """
        Drops a pending entry after the remote store definitively rejected its order.
        Committed entries are never removed here.
        """
        with self.session_factory.begin() as session:
            result = session.execute(
                delete(CheckoutLedgerEntry).where(
                    CheckoutLedgerEntry.idempotency_key == idempotency_key,
                    CheckoutLedgerEntry.order_key.is_(None),
                )
            )
            return result.rowcount > 0

    def complete_checkout(self, customer_key: str, line_ids: Iterable[int], product_keys: Iterable[str]) -> int:
        """
        Removes the checked-out cart lines and their ledger entries in one transaction.

        Only the given line ids are deleted, so a line added while the checkout
        was running stays in the cart.

        Returns:
            int: Number of cart lines removed.
        """
        line_ids = list(line_ids)
        product_keys = list(product_keys)
        with self.session_factory.begin() as session:
            result = session.execute(
                delete(CartLine).where(
                    CartLine.customer_key == customer_key,
                    CartLine.id.in_(line_ids),
                )
            )
            session.execute(
                delete(CheckoutLedgerEntry).where(
                    CheckoutLedgerEntry.customer_key == customer_key,
                    CheckoutLedgerEntry.product_key.in_(product_keys),
                )
            )
            return result.rowcount
