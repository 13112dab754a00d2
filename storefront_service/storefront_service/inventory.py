"""Inventory ledger: the authoritative owner of per-product stock."""

import uuid
from collections.abc import Sequence
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from . import repository
from .database import unit_of_work
from .exceptions import InsufficientStockError
from .logger import get_logger
from .models import Order, OrderItem, Product, SettledOrder, SettlementOutcome, utcnow
from .schemas import ProductCreate, ProductUpdate
from .search import ProductSearchSync

logger = get_logger("storefront.inventory")


class InventoryLedger:
    """Stock mutations, settlement and the product catalog writes around them.

    Attributes:
        search_sync: Propagates product changes to the search index.
        atomic: When True a shortfall rolls back every decrement of the
            order; otherwise decrements applied before the shortfall stay.
    """

    def __init__(self, search_sync: ProductSearchSync, atomic: bool = False):
        self.search_sync = search_sync
        self.atomic = atomic

    def decrease_stock_if_available(self, session: Session, product: Product, quantity: int) -> bool:
        """Atomically subtract ``quantity`` if the product still covers it.

        The check and the write are a single conditional UPDATE, so concurrent
        settlements for the same product can never take stock below zero.

        Returns:
            bool: True if the stock was decremented, False on shortfall
        """
        result = session.execute(
            update(Product)
            .where(
                Product.id == product.id,
                Product.stock_quantity > 0,
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        session.refresh(product)
        return result.rowcount == 1

    def settle_stock(self, session: Session, order: Order) -> list[Product]:
        """Decrement stock for every item of a paid order.

        Items are settled in order and settlement stops at the first item
        stock cannot cover.

        Returns:
            list[Product]: Products whose stock was decremented.

        Raises:
            InsufficientStockError: Carrying the itemized shortfall and, in
                partial mode, the products decremented before it.
        """
        settled: list[Product] = []
        savepoint = session.begin_nested() if self.atomic else None

        for index, item in enumerate(order.items):
            if self.decrease_stock_if_available(session, item.product, item.quantity):
                logger.debug(f"Order {order.id}: -{item.quantity} {item.product.name}")
                settled.append(item.product)
                continue

            unsettled = order.items[index:]
            if savepoint is not None:
                savepoint.rollback()
                for product in settled:
                    session.refresh(product)
                settled = []
                unsettled = order.items
            raise self.insufficient_stock(order, settled=settled, items=unsettled)

        if savepoint is not None:
            savepoint.commit()
        return settled

    def insufficient_stock(
        self,
        order: Order,
        settled: Sequence[Product] = (),
        items: Optional[Sequence[OrderItem]] = None,
    ) -> InsufficientStockError:
        """Build the compensation error listing every item stock cannot cover.

        Args:
            order: The order the shortfall belongs to
            settled: Products already decremented for this order
            items: Items to check, all of the order's items by default
        """
        shortfalls = [
            {
                "product": item.product.name,
                "available": item.product.stock_quantity,
                "requested": item.quantity,
            }
            for item in (order.items if items is None else items)
            if item.quantity > item.product.stock_quantity
        ]
        return InsufficientStockError(shortfalls, order_id=order.id, settled=settled)

    def is_settled(self, session: Session, order_id: uuid.UUID) -> bool:
        return session.get(SettledOrder, order_id) is not None

    def mark_settled(
        self,
        session: Session,
        order_id: uuid.UUID,
        outcome: SettlementOutcome = SettlementOutcome.SETTLED,
    ) -> SettledOrder:
        """Record the settlement marker for an order and flush it.

        Raises:
            sqlalchemy.exc.IntegrityError: If another consumer marked it first.
        """
        marker = SettledOrder(order_id=order_id, outcome=outcome)
        session.add(marker)
        session.flush()
        return marker

    # Catalog writes. Each one reaches the search index only after commit.

    def create_product(self, session_factory: sessionmaker, data: ProductCreate) -> Product:
        with unit_of_work(session_factory) as session:
            product = Product(**data.model_dump())
            session.add(product)
        logger.info(f"Product {product.id} created with stock {product.stock_quantity}")
        self.search_sync.sync_product(product)
        return product

    def update_product(self, session_factory: sessionmaker, product_id: uuid.UUID, data: ProductUpdate) -> Product:
        with unit_of_work(session_factory) as session:
            product = repository.get_product(session, product_id)
            for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(product, field, value)
        self.search_sync.sync_product(product)
        return product

    def restock(self, session_factory: sessionmaker, product_id: uuid.UUID, quantity: int) -> Product:
        if quantity <= 0:
            raise ValueError("Restock quantity must be a positive integer")
        with unit_of_work(session_factory) as session:
            product = repository.get_product(session, product_id)
            session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            session.refresh(product)
        logger.info(f"Product {product_id} restocked by {quantity}, now {product.stock_quantity}")
        self.search_sync.sync_product(product)
        return product
