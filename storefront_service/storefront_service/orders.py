"""Order orchestration: creation with an optimistic stock check, then payment."""

import uuid
from collections.abc import Sequence

from sqlalchemy.orm import sessionmaker

from . import repository
from .database import unit_of_work
from .inventory import InventoryLedger
from .logger import get_logger
from .models import Order
from .producer import OrderEventProducer
from .schemas import OrderItemRequest, OrderPaidEvent

logger = get_logger("storefront.orders")


class OrderService:
    """Builds orders and drives the pay-then-settle sequence.

    Stock is never decremented here. Creation only checks that the requested
    quantities are plausible against current stock, without reserving
    anything; the authoritative decrement happens when the reconciler
    consumes the order paid event.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: InventoryLedger,
        producer: OrderEventProducer,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.producer = producer

    def create_order(self, items: Sequence[OrderItemRequest], user_id: str) -> Order:
        """Create an order for ``user_id`` from the requested items.

        If any requested quantity exceeds the product's stock at read time
        the order is persisted as CANCELLED and the shortfall is raised.

        Args:
            items: Requested (product, quantity) pairs
            user_id: Owner of the new order

        Returns:
            Order: The persisted PENDING order

        Raises:
            NotFoundError: If a product does not exist.
            InsufficientStockError: If the order had to be cancelled.
        """
        with unit_of_work(self.session_factory) as session:
            order = Order(user_id=user_id)
            for request in items:
                product = repository.get_product(session, request.product_id)
                order.add_item(product, request.quantity)

            if order.is_pending and any(not item.product.has_stock(item.quantity) for item in order.items):
                order.cancel()

            session.add(order)

            if order.is_cancelled:
                session.commit()
                logger.warning(f"Order {order.id} cancelled at creation: insufficient stock")
                raise self.ledger.insufficient_stock(order)

        logger.info(f"Order {order.id} created for user {user_id} with total {order.total_amount}")
        return order

    def pay_order(self, order_id: uuid.UUID) -> Order:
        """Mark an order PAID, persist it, then publish the order paid event.

        The caller gets the paid order once the state change is committed,
        whatever happens to the event afterwards.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidOrderStateError: If the order is not pending.
        """
        with unit_of_work(self.session_factory) as session:
            order = repository.get_order_with_items(session, order_id)
            order.process_payment()

        logger.info(f"Order {order.id} paid, total {order.total_amount}")
        self.producer.publish_order_paid(OrderPaidEvent.for_order(order))
        return order

    def get_order(self, order_id: uuid.UUID) -> Order:
        with unit_of_work(self.session_factory) as session:
            return repository.get_order_with_items(session, order_id)
