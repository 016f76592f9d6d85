"""
database.py — Local Relational Store

SQLAlchemy models and session setup for the data the storefront owns locally:
    • cart_lines        — (customer, product) -> quantity awaiting checkout
    • checkout_ledger   — one entry per cart line sent to remote order creation,
                          so a retried checkout never orders the same line twice

The customer key of both tables is the customer's login username.
"""

import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

CART_DATABASE_URL = os.environ.get("CART_DATABASE_URL", "sqlite:///storefront.db")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for storefront ORM models."""


class CartLine(Base):
    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint("customer_key", "product_key", name="uq_cart_line_customer_product"),
        CheckConstraint("quantity > 0", name="ck_cart_line_quantity_positive"),
    )

    # Autoincrement id doubles as insertion order for checkout.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    product_key: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class CheckoutLedgerEntry(Base):
    __tablename__ = "checkout_ledger"
    __table_args__ = (
        UniqueConstraint("customer_key", "product_key", name="uq_ledger_customer_product"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    product_key: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # NULL until the remote store confirmed the order.
    order_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unit_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_committed(self) -> bool:
        return self.order_key is not None


def create_session_factory(database_url: str = CART_DATABASE_URL) -> sessionmaker:
    """
    Creates the engine, makes sure all tables exist and returns a session factory.

    Args:
        database_url (str): SQLAlchemy URL of the local store.

    Returns:
        sessionmaker: Factory producing sessions whose objects stay usable after commit.
    """
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
