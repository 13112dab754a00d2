"""Stock reconciler: settles paid orders against the inventory ledger."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from . import repository
from .database import unit_of_work
from .exceptions import InsufficientStockError, NotFoundError
from .inventory import InventoryLedger
from .logger import get_logger
from .models import Product, SettlementOutcome
from .schemas import OrderPaidEvent

logger = get_logger("storefront.reconciler")


class StockReconciler:
    """Performs the authoritative post-payment stock decrement.

    Safe to call more than once for the same event: a settled marker keyed by
    order id is written in the same transaction as the decrements, so a
    redelivered event is recognised and skipped.
    """

    def __init__(self, session_factory: sessionmaker, ledger: InventoryLedger):
        self.session_factory = session_factory
        self.ledger = ledger

    def handle_order_paid(self, event: OrderPaidEvent) -> SettlementOutcome:
        """Settle the stock of one paid order.

        Business failures (unknown order, shortfall) are handled here and
        reported through the returned outcome; only storage failures escape,
        as ``UnexpectedError``.

        Args:
            event: The consumed order paid event

        Returns:
            SettlementOutcome: What happened to the order's stock
        """
        logger.info(f"Received OrderPaidEvent for order: {event.order_id}")
        settled: list[Product] = []
        compensation: InsufficientStockError | None = None

        with unit_of_work(self.session_factory) as session:
            if self.ledger.is_settled(session, event.order_id):
                logger.info(f"Order {event.order_id} already settled, skipping redelivered event")
                return SettlementOutcome.DUPLICATE

            try:
                order = repository.get_order_with_items(session, event.order_id)
            except NotFoundError as e:
                logger.error(f"Cannot settle stock: {e.message}")
                return SettlementOutcome.SKIPPED

            try:
                marker = self.ledger.mark_settled(session, order.id)
            except IntegrityError:
                session.rollback()
                logger.info(f"Order {order.id} is being settled by another consumer, skipping")
                return SettlementOutcome.DUPLICATE

            if not order.is_paid:
                logger.warning(f"Order {order.id} is {order.status.value}, not PAID; nothing to settle")
                marker.outcome = SettlementOutcome.SKIPPED
                return SettlementOutcome.SKIPPED

            try:
                settled = self.ledger.settle_stock(session, order)
            except InsufficientStockError as e:
                compensation = e
                settled = e.settled
                marker.outcome = SettlementOutcome.COMPENSATED

        self.ledger.search_sync.sync_products(settled)

        if compensation is not None:
            logger.warning(f"Insufficient stock settling order {event.order_id}:\n{compensation.message}")
            return SettlementOutcome.COMPENSATED

        logger.info(f"OrderPaidEvent processed successfully for order: {event.order_id}")
        return SettlementOutcome.SETTLED
