"""Test fixtures for the storefront service tests."""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.pool import StaticPool

from storefront_service.database import create_session_factory, init_db, unit_of_work
from storefront_service.inventory import InventoryLedger
from storefront_service.models import Product
from storefront_service.orders import OrderService
from storefront_service.producer import OrderEventProducer
from storefront_service.reconciler import StockReconciler
from storefront_service.schemas import OrderItemRequest
from storefront_service.search import InMemorySearchIndex, ProductSearchSync


@pytest.fixture
def session_factory():
    """Create a session factory over a fresh in-memory SQLite database.

    Returns:
        sessionmaker: Factory whose sessions all share one connection.
    """
    factory = create_session_factory("sqlite://", poolclass=StaticPool)
    init_db(factory)
    return factory


@pytest.fixture
def search_index():
    return InMemorySearchIndex()


@pytest.fixture
def search_sync(search_index):
    return ProductSearchSync(search_index)


@pytest.fixture
def ledger(search_sync):
    return InventoryLedger(search_sync)


@pytest.fixture
def atomic_ledger(search_sync):
    return InventoryLedger(search_sync, atomic=True)


@pytest.fixture
def mock_producer():
    """Create a stand-in for the Kafka order event producer."""
    return MagicMock(spec=OrderEventProducer)


@pytest.fixture
def order_service(session_factory, ledger, mock_producer):
    return OrderService(session_factory, ledger, mock_producer)


@pytest.fixture
def reconciler(session_factory, ledger):
    return StockReconciler(session_factory, ledger)


@pytest.fixture
def make_product(session_factory):
    """Factory fixture persisting a product and returning it.

    Returns:
        Callable: ``make_product(stock=10, price="99.99", name="Test Product")``
    """

    def _make_product(stock: int = 10, price: str = "99.99", name: str = "Test Product") -> Product:
        with unit_of_work(session_factory) as session:
            product = Product(
                name=name,
                description="Test Description",
                price=Decimal(price),
                category="Electronics",
                stock_quantity=stock,
            )
            session.add(product)
        return product

    return _make_product


@pytest.fixture
def stock_of(session_factory):
    """Read the current stock of a product straight from the store."""

    def _stock_of(product_id: uuid.UUID) -> int:
        with unit_of_work(session_factory) as session:
            return session.get(Product, product_id).stock_quantity

    return _stock_of


def order_items(*pairs) -> list[OrderItemRequest]:
    """Build item requests from (product, quantity) pairs."""
    return [OrderItemRequest(product_id=product.id, quantity=quantity) for product, quantity in pairs]


@pytest.fixture
def items_for():
    """Build item requests from (product, quantity) pairs."""
    return order_items
