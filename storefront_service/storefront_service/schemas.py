"""Pydantic models for the order paid event and the HTTP payloads."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Order, OrderStatus


class OrderPaidEvent(BaseModel):
    """Payload published when an order transitions to PAID.

    Attributes:
        order_id (UUID): The paid order; also used as the message key.
        total_amount (Decimal): Order total at payment time.
        paid_at (datetime): When the payment was processed.
    """

    order_id: uuid.UUID
    total_amount: Decimal
    paid_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_order(cls, order: Order) -> "OrderPaidEvent":
        return cls(order_id=order.id, total_amount=order.total_amount)

    @property
    def key(self) -> bytes:
        return str(self.order_id).encode("utf-8")


class OrderItemRequest(BaseModel):
    """A requested (product, quantity) pair.

    Attributes:
        product_id (UUID): Product to order.
        quantity (int): Number of units, must be positive.
    """

    product_id: uuid.UUID
    quantity: int = Field(..., gt=0)

    model_config = ConfigDict(
        json_schema_extra={
            "properties": {
                "product_id": {"example": "3fa85f64-5717-4562-b3fc-2c963f66afa6"},
                "quantity": {"example": 2},
            }
        }
    )


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderResponse(BaseModel):
    """Caller-facing representation of an order."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    status: OrderStatus
    total_amount: Decimal
    items: list[OrderItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductCreate(BaseModel):
    """Administrative product creation payload."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    stock_quantity: int = Field(0, ge=0)

    model_config = ConfigDict(
        json_schema_extra={
            "properties": {
                "name": {"example": "Mechanical Keyboard"},
                "price": {"example": "99.99"},
                "category": {"example": "Electronics"},
                "stock_quantity": {"example": 10},
            }
        }
    )


class ProductUpdate(BaseModel):
    """Descriptive fields only; stock changes go through restock."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1, max_length=100)


class RestockRequest(BaseModel):
    quantity: int = Field(..., gt=0)


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    stock_quantity: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
