"""
models.py — Data Models for the Storefront Service

This module defines the data structures exchanged with the remote attribute
store and returned by the storefront API. It uses Pydantic models to ensure
type safety and automatic validation of incoming data.

Field names follow the camelCase wire format of the remote store.

Models:
    - Product, Customer, Order: records owned by the remote store.
    - OrderStatus: the closed set of order status literals.
    - OrderConfirmation, CheckoutResult: results of a checkout.
    - CartItemView, CartView, CartOutcome: cart views and cart operation results.
    - QuantityUpdate, UpdateQuantitiesRequest, UpdateQuantitiesResult: batch cart edits.
    - StatusUpdateRequest, StatusUpdateOutcome, StatusUpdateResult: staff status changes.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    SUBMITTED = "Submitted"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @classmethod
    def values(cls) -> List[str]:
        return [s.value for s in cls]


class Product(BaseModel):
    """
    A product as stored remotely.

    Attributes:
        id (str): Product key.
        productName (str): Display name.
        price (float): Current unit price.
        stockAvailable (int): Live stock, never negative.
    """
    id: str
    productName: str
    description: str = ""
    price: float
    stockAvailable: int = Field(..., ge=0)
    imageUrl: Optional[str] = None


class Customer(BaseModel):
    id: str
    name: str = ""
    surname: str = ""
    username: str
    email: str = ""
    shippingAddress: str = ""


class Order(BaseModel):
    """
    An order as stored remotely. Immutable except for `status`.

    `versionToken` is not part of the JSON body; the client fills it from the
    ETag header of the read so it can be passed back on a status update.
    """
    id: str
    customerId: str
    productId: str
    productName: str = ""
    quantity: int
    unitPrice: float
    totalAmount: float
    orderDateUtc: datetime
    status: str
    versionToken: Optional[str] = None


class OrderConfirmation(BaseModel):
    """
    One order created by a checkout.

    Attributes:
        reused (bool): True when the order was created by an earlier, partially
            failed checkout attempt and was taken from the checkout ledger.
    """
    orderId: str
    productId: str
    productName: str = ""
    quantity: int
    unitPrice: float
    totalAmount: float
    status: str = OrderStatus.SUBMITTED.value
    reused: bool = False

    @classmethod
    def from_order(cls, order: Order) -> "OrderConfirmation":
        return cls(
            orderId=order.id,
            productId=order.productId,
            productName=order.productName,
            quantity=order.quantity,
            unitPrice=order.unitPrice,
            totalAmount=order.totalAmount,
            status=order.status,
        )


class CheckoutResult(BaseModel):
    customerKey: str
    orders: List[OrderConfirmation]
    totalAmount: float


class CartItemView(BaseModel):
    productId: str
    productName: str
    quantity: int
    unitPrice: float
    lineTotal: float


class CartView(BaseModel):
    """
    A customer's cart joined with live product data.

    Attributes:
        missingProducts (List[str]): Keys of cart lines whose product no longer
            resolves remotely. They are left in storage but not shown.
    """
    customerKey: str
    items: List[CartItemView]
    missingProducts: List[str] = []
    totalAmount: float


class CartOutcome(BaseModel):
    success: bool
    message: str
    productId: str
    quantity: Optional[int] = None


class QuantityUpdate(BaseModel):
    productId: str
    quantity: int


class UpdateQuantitiesRequest(BaseModel):
    items: List[QuantityUpdate]


class UpdateQuantitiesResult(BaseModel):
    updated: List[QuantityUpdate] = []
    removed: List[str] = []
    skipped: List[str] = []


class StatusUpdateRequest(BaseModel):
    status: str
    versionToken: Optional[str] = None


class StatusUpdateOutcome(str, Enum):
    UPDATED = "updated"
    CONFLICT = "concurrent_modification"


class StatusUpdateResult(BaseModel):
    outcome: StatusUpdateOutcome
    orderId: str
    status: str
    versionToken: Optional[str] = None
