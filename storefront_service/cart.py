"""
cart.py — Cart Manager

Customer-facing cart operations. The cart lives in the local store; products
and stock are read live from the remote store on every operation that needs
them.

Operations:
    • add_to_cart       — one more unit of a product (no stock check, deferred to checkout)
    • remove_from_cart  — drop a line; a missing line is reported, not an error
    • update_quantities — batch quantity edit, stops at the first line that exceeds stock
    • view_cart         — cart joined with live product names and prices
"""

import logging
from typing import List

from .cart_store import CartStore
from .clients import StoreClient
from .errors import LineAlreadySubmitted, ProductNotFound, StockExceeded
from .models import CartItemView, CartOutcome, CartView, QuantityUpdate, UpdateQuantitiesResult

log = logging.getLogger(__name__)


class CartManager:
    def __init__(self, store: StoreClient, cart_store: CartStore):
        self.store = store
        self.cart_store = cart_store

    def add_to_cart(self, customer_key: str, product_key: str) -> CartOutcome:
        """
        Adds one unit of a product to the customer's cart.
        Raises:
            ProductNotFound: If the product does not exist remotely.
        """
        product = self.store.get_product(product_key)
        if product is None:
            raise ProductNotFound(product_key)

        line = self.cart_store.add_or_increment(customer_key, product_key)
        log.info(f"[Customer: {customer_key}] Added {product_key} to cart (quantity {line.quantity}).")
        return CartOutcome(
            success=True,
            message=f"{product.productName} added to cart.",
            productId=product_key,
            quantity=line.quantity
        )

    def remove_from_cart(self, customer_key: str, product_key: str) -> CartOutcome:
        if self.cart_store.delete_line(customer_key, product_key):
            log.info(f"[Customer: {customer_key}] Removed {product_key} from cart.")
            return CartOutcome(success=True, message="Item removed from cart.", productId=product_key)

        log.info(f"[Customer: {customer_key}] Remove requested for {product_key}, but it is not in the cart.")
        return CartOutcome(success=False, message="Item not found in cart.", productId=product_key)

    def update_quantities(self, customer_key: str, items: List[QuantityUpdate]) -> UpdateQuantitiesResult:
        """
        Applies a batch of quantity changes in the given order.

        A quantity of zero or less removes the line. Any other quantity is checked
        against live stock first. Each change is committed as soon as it is
        validated: when a line fails, changes for earlier lines stay, the failing
        line and everything after it are left untouched.

        Lines that are not in the cart are skipped. A line already sent by an
        unfinished checkout keeps its submitted quantity until that checkout
        completes; removing it is always allowed.

        Raises:
            LineAlreadySubmitted: If the quantity of such a line would change.
            StockExceeded: If a requested quantity is above the live stock.
            ProductNotFound: If a product no longer exists remotely.
        """
        result = UpdateQuantitiesResult()
        log_prefix = f"[Customer: {customer_key}]"

        for item in items:
            if self.cart_store.get_line(customer_key, item.productId) is None:
                log.info(f"{log_prefix} Skipping {item.productId}: not in cart.")
                result.skipped.append(item.productId)
                continue

            if item.quantity <= 0:
                self.cart_store.delete_line(customer_key, item.productId)
                result.removed.append(item.productId)
                continue

            entry = self.cart_store.get_ledger_entry(customer_key, item.productId)
            if entry is not None:
                if entry.quantity != item.quantity:
                    log.warning(
                        f"{log_prefix} Cannot update {item.productId} to {item.quantity}, "
                        f"quantity {entry.quantity} was already sent by an unfinished checkout."
                    )
                    raise LineAlreadySubmitted(item.productId, entry.quantity, item.quantity, entry.order_key)
                # Restoring the submitted quantity; its stock is already claimed by that order.
                self.cart_store.set_quantity(customer_key, item.productId, item.quantity)
                result.updated.append(item)
                continue

            product = self.store.get_product(item.productId)
            if product is None:
                raise ProductNotFound(item.productId)
            if item.quantity > product.stockAvailable:
                log.warning(
                    f"{log_prefix} Cannot update {item.productId} to {item.quantity}, "
                    f"only {product.stockAvailable} in stock."
                )
                raise StockExceeded(item.productId, product.stockAvailable, item.quantity, product.productName)

            self.cart_store.set_quantity(customer_key, item.productId, item.quantity)
            result.updated.append(item)

        log.info(
            f"{log_prefix} Cart updated: {len(result.updated)} changed, "
            f"{len(result.removed)} removed, {len(result.skipped)} skipped."
        )
        return result

    def view_cart(self, customer_key: str) -> CartView:
        """
        Returns the cart joined with live product data.

        Lines whose product no longer resolves are left in storage, omitted from
        the items and listed in `missingProducts`.
        """
        items = []
        missing = []
        for line in self.cart_store.list_lines(customer_key):
            product = self.store.get_product(line.product_key)
            if product is None:
                log.warning(f"[Customer: {customer_key}] Cart references unknown product {line.product_key}.")
                missing.append(line.product_key)
                continue
            items.append(CartItemView(
                productId=product.id,
                productName=product.productName,
                quantity=line.quantity,
                unitPrice=product.price,
                lineTotal=round(product.price * line.quantity, 2)
            ))

        return CartView(
            customerKey=customer_key,
            items=items,
            missingProducts=missing,
            totalAmount=round(sum(i.lineTotal for i in items), 2)
        )
