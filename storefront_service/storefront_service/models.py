"""Persistent entities: products, orders and their items.

``Order`` is the aggregate root of an order and enforces its own state
machine. None of the domain methods perform I/O; they only mutate the
in-memory entity, which the session persists when the unit of work commits.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .exceptions import InvalidOrderStateError

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class SettlementOutcome(str, enum.Enum):
    SETTLED = "SETTLED"
    COMPENSATED = "COMPENSATED"
    SKIPPED = "SKIPPED"
    DUPLICATE = "DUPLICATE"


class Product(Base):
    """A catalog product and its authoritative stock count."""

    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    category: Mapped[str] = mapped_column(String(100))
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    def has_stock(self, quantity: Optional[int] = None) -> bool:
        """Whether the product is in stock, and covers ``quantity`` if given."""
        if quantity is None:
            return self.stock_quantity > 0
        return self.stock_quantity > 0 and self.stock_quantity >= quantity

    def decrease_stock(self, quantity: int) -> None:
        self.stock_quantity -= quantity

    def increase_stock(self, quantity: int) -> None:
        self.stock_quantity += quantity

    def __repr__(self) -> str:
        return f"<Product {self.id} {self.name!r} stock={self.stock_quantity}>"


class Order(Base):
    """Aggregate root holding the line items and total of one order."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=ZERO)
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus, native_enum=False), default=OrderStatus.PENDING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("status", OrderStatus.PENDING)
        kwargs.setdefault("total_amount", ZERO)
        super().__init__(**kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    def add_item(self, product: Product, quantity: int) -> "OrderItem":
        """Add ``quantity`` units of ``product`` at its current price.

        Raises:
            InvalidOrderStateError: If the order is no longer pending.
            ValueError: If quantity is not a positive integer.
        """
        self._check_pending_status()
        if quantity <= 0:
            raise ValueError("Quantity must be a positive integer")

        position = self.items[-1].position + 1 if self.items else 0
        item = OrderItem(product=product, quantity=quantity, unit_price=product.price, position=position)
        item.calculate_total_price()

        self.items.append(item)
        self._calculate_total()
        return item

    def remove_item(self, item: "OrderItem") -> None:
        self._check_pending_status()
        self.items.remove(item)
        self._calculate_total()

    def process_payment(self) -> None:
        self._check_pending_status()
        self.status = OrderStatus.PAID

    def cancel(self) -> None:
        self._check_pending_status()
        self.status = OrderStatus.CANCELLED

    def _calculate_total(self) -> None:
        self.total_amount = sum((item.total_price for item in self.items), ZERO)

    def _check_pending_status(self) -> None:
        if self.status != OrderStatus.PENDING:
            raise InvalidOrderStateError(
                f"Orders can only be modified in pending status (order is {self.status.value})."
            )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status.value} total={self.total_amount}>"


class OrderItem(Base):
    """One line of an order; price is a snapshot taken when it was added."""

    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"))
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    def calculate_total_price(self) -> None:
        self.total_price = self.unit_price * self.quantity


class SettledOrder(Base):
    """Marker recording that an order's paid event has been settled."""

    __tablename__ = "settled_orders"

    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    outcome: Mapped[SettlementOutcome] = mapped_column(Enum(SettlementOutcome, native_enum=False))
    settled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
