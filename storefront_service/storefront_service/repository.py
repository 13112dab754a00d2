"""Query helpers for products and orders."""

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .exceptions import NotFoundError
from .models import Order, OrderItem, Product


def get_product(session: Session, product_id: uuid.UUID) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def get_order_with_items(session: Session, order_id: uuid.UUID) -> Order:
    """Load an order with its items and each item's product in one go."""
    stmt = (
        select(Order)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .where(Order.id == order_id)
    )
    order = session.scalars(stmt).one_or_none()
    if order is None:
        raise NotFoundError("Order", order_id)
    return order
