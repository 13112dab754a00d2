"""Tests for the inventory ledger and stock settlement."""

import uuid
from decimal import Decimal

import pytest

from storefront_service import repository
from storefront_service.database import unit_of_work
from storefront_service.exceptions import InsufficientStockError, NotFoundError
from storefront_service.models import SettledOrder, SettlementOutcome
from storefront_service.schemas import ProductCreate, ProductUpdate


def _paid_order(order_service, items):
    order = order_service.create_order(items, user_id="cust-12345")
    return order_service.pay_order(order.id)


def _deplete(session_factory, ledger, product, quantity):
    """Simulate a concurrent settlement taking stock away."""
    with unit_of_work(session_factory) as session:
        fresh = repository.get_product(session, product.id)
        assert ledger.decrease_stock_if_available(session, fresh, quantity)


def test_decrease_stock_if_available(session_factory, ledger, make_product, stock_of):
    product = make_product(stock=5)

    with unit_of_work(session_factory) as session:
        fresh = repository.get_product(session, product.id)
        assert ledger.decrease_stock_if_available(session, fresh, 3)
        assert fresh.stock_quantity == 2
        assert not ledger.decrease_stock_if_available(session, fresh, 3)
        assert fresh.stock_quantity == 2

    assert stock_of(product.id) == 2


def test_decrease_stock_refuses_empty_product(session_factory, ledger, make_product, stock_of):
    product = make_product(stock=0)

    with unit_of_work(session_factory) as session:
        fresh = repository.get_product(session, product.id)
        assert not ledger.decrease_stock_if_available(session, fresh, 1)

    assert stock_of(product.id) == 0


def test_settle_stock_decrements_each_item(session_factory, ledger, order_service, make_product, stock_of, items_for):
    keyboard = make_product(stock=10, name="Keyboard")
    mouse = make_product(stock=4, price="19.90", name="Mouse")
    order = _paid_order(order_service, items_for((keyboard, 3), (mouse, 4)))

    with unit_of_work(session_factory) as session:
        loaded = repository.get_order_with_items(session, order.id)
        settled = ledger.settle_stock(session, loaded)

    assert [p.name for p in settled] == ["Keyboard", "Mouse"]
    assert stock_of(keyboard.id) == 7
    assert stock_of(mouse.id) == 0


def test_partial_settlement_keeps_earlier_decrements(
    session_factory, ledger, order_service, make_product, stock_of, items_for
):
    """Test that a shortfall leaves decrements applied before it in place."""
    keyboard = make_product(stock=5, name="Keyboard")
    mouse = make_product(stock=5, price="19.90", name="Mouse")
    order = _paid_order(order_service, items_for((keyboard, 2), (mouse, 5)))
    _deplete(session_factory, ledger, mouse, 4)

    with unit_of_work(session_factory) as session:
        loaded = repository.get_order_with_items(session, order.id)
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.settle_stock(session, loaded)

    assert exc_info.value.shortfalls == [{"product": "Mouse", "available": 1, "requested": 5}]
    assert [p.name for p in exc_info.value.settled] == ["Keyboard"]
    assert stock_of(keyboard.id) == 3
    assert stock_of(mouse.id) == 1


def test_atomic_settlement_rolls_back_whole_order(
    session_factory, atomic_ledger, order_service, make_product, stock_of, items_for
):
    keyboard = make_product(stock=5, name="Keyboard")
    mouse = make_product(stock=5, price="19.90", name="Mouse")
    order = _paid_order(order_service, items_for((keyboard, 2), (mouse, 5)))
    _deplete(session_factory, atomic_ledger, mouse, 4)

    with unit_of_work(session_factory) as session:
        loaded = repository.get_order_with_items(session, order.id)
        with pytest.raises(InsufficientStockError) as exc_info:
            atomic_ledger.settle_stock(session, loaded)

    assert exc_info.value.settled == []
    assert stock_of(keyboard.id) == 5
    assert stock_of(mouse.id) == 1


def test_insufficient_stock_message_is_itemized(session_factory, ledger, order_service, make_product, items_for):
    product = make_product(stock=10)
    order = order_service.create_order(items_for((product, 4)), user_id="cust-12345")

    with unit_of_work(session_factory) as session:
        loaded = repository.get_order_with_items(session, order.id)
        loaded.items[0].product.stock_quantity = 2
        error = ledger.insufficient_stock(loaded)
        session.rollback()

    assert error.message == "[Product: Test Product, Available: 2, Requested: 4]"
    assert error.order_id == order.id


def test_mark_settled_records_outcome(session_factory, ledger, make_product, order_service, items_for):
    order = order_service.create_order(items_for((make_product(), 1)), user_id="cust-12345")

    with unit_of_work(session_factory) as session:
        assert not ledger.is_settled(session, order.id)
        ledger.mark_settled(session, order.id, SettlementOutcome.COMPENSATED)

    with unit_of_work(session_factory) as session:
        assert ledger.is_settled(session, order.id)
        assert session.get(SettledOrder, order.id).outcome == SettlementOutcome.COMPENSATED


def test_create_product_syncs_search_index(session_factory, ledger, search_index):
    product = ledger.create_product(
        session_factory,
        ProductCreate(name="Desk Lamp", price=Decimal("35.00"), category="Home", stock_quantity=7),
    )

    document = search_index.get(str(product.id))
    assert document["name"] == "Desk Lamp"
    assert document["stock_quantity"] == 7


def test_update_product_changes_descriptive_fields_only(session_factory, ledger, make_product, search_index, stock_of):
    product = make_product(stock=6)

    updated = ledger.update_product(session_factory, product.id, ProductUpdate(name="Renamed", price=Decimal("5.00")))

    assert updated.name == "Renamed"
    assert updated.price == Decimal("5.00")
    assert stock_of(product.id) == 6
    assert search_index.get(str(product.id))["name"] == "Renamed"


def test_restock_increases_stock_and_syncs(session_factory, ledger, make_product, search_index, stock_of):
    product = make_product(stock=2)

    restocked = ledger.restock(session_factory, product.id, 8)

    assert restocked.stock_quantity == 10
    assert stock_of(product.id) == 10
    assert search_index.get(str(product.id))["stock_quantity"] == 10


def test_restock_unknown_product(session_factory, ledger):
    with pytest.raises(NotFoundError):
        ledger.restock(session_factory, uuid.uuid4(), 1)
