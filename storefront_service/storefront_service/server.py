"""FastAPI server implementation for the Storefront Service."""

import threading
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from confluent_kafka.admin import AdminClient
from fastapi import APIRouter, Body, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from . import repository
from .config import Settings
from .consumer import OrderPaidConsumer
from .database import create_session_factory, init_db, unit_of_work
from .exceptions import InsufficientStockError, InvalidOrderStateError, NotFoundError, StorefrontError, UnexpectedError
from .inventory import InventoryLedger
from .logger import logger, setup_logging
from .orders import OrderService
from .producer import OrderEventProducer
from .reconciler import StockReconciler
from .schemas import (
    ErrorResponse,
    OrderItemRequest,
    OrderResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    RestockRequest,
)
from .search import ProductSearchSync, build_search_index


class StorefrontState:
    """Class to manage storefront service state."""

    def __init__(self):
        """Initialize empty service state; ``configure`` wires the components."""
        self.settings: Optional[Settings] = None
        self.session_factory: Optional[sessionmaker] = None
        self.ledger: Optional[InventoryLedger] = None
        self.orders: Optional[OrderService] = None
        self.reconciler: Optional[StockReconciler] = None
        self.consumer: Optional[OrderPaidConsumer] = None

    def configure(
        self,
        settings: Settings,
        session_factory: sessionmaker,
        producer: OrderEventProducer,
        search_sync: ProductSearchSync,
    ) -> None:
        """Wire the pipeline components together.

        Args:
            settings: Service settings
            session_factory: Factory for the authoritative store
            producer: Publishes order paid events
            search_sync: Propagates product changes to the search index
        """
        self.settings = settings
        self.session_factory = session_factory
        self.ledger = InventoryLedger(search_sync, atomic=settings.atomic_settlement)
        self.orders = OrderService(session_factory, self.ledger, producer)
        self.reconciler = StockReconciler(session_factory, self.ledger)

    def require_orders(self) -> OrderService:
        if self.orders is None:
            raise HTTPException(status_code=503, detail="Service unavailable")
        return self.orders

    def require_ledger(self) -> InventoryLedger:
        if self.ledger is None:
            raise HTTPException(status_code=503, detail="Service unavailable")
        return self.ledger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the lifecycle of the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    settings = Settings.from_env()
    setup_logging(settings)

    session_factory = create_session_factory(settings.database_url)
    init_db(session_factory)

    producer = OrderEventProducer(settings.kafka_bootstrap_servers, topic=settings.order_paid_topic)
    search_sync = ProductSearchSync(build_search_index(settings.search_url, settings.search_index))
    search_sync.ensure_index()
    state.configure(settings, session_factory, producer, search_sync)

    state.consumer = OrderPaidConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        topic=settings.order_paid_topic,
        redelivery_backoff=settings.redelivery_backoff_seconds,
    )
    state.consumer.subscribe()

    consumer_thread = threading.Thread(
        target=state.consumer.process_messages, args=(state.reconciler,), daemon=True
    )
    consumer_thread.start()
    logger.info(f"Stock reconciler started, settlement mode: {settings.settlement_mode}")

    yield

    logger.info("Shutting down storefront service...")
    state.consumer.close()
    consumer_thread.join(timeout=5)
    producer.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Storefront Service", lifespan=lifespan)
router = APIRouter()
state = StorefrontState()


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError):
    logger.error(f"Entity not found: {exc.message}")
    return _error_response(404, exc.error, exc.message)


@app.exception_handler(InvalidOrderStateError)
async def handle_invalid_order_state(request: Request, exc: InvalidOrderStateError):
    logger.error(f"Invalid order state: {exc.message}")
    return _error_response(409, exc.error, exc.message)


@app.exception_handler(InsufficientStockError)
async def handle_insufficient_stock(request: Request, exc: InsufficientStockError):
    logger.error(f"Insufficient stock: {exc.message}")
    return _error_response(400, exc.error, exc.message)


@app.exception_handler(UnexpectedError)
async def handle_unexpected(request: Request, exc: UnexpectedError):
    return _error_response(503, exc.error, "The service is temporarily unavailable. Please retry.")


@app.exception_handler(StorefrontError)
async def handle_business_error(request: Request, exc: StorefrontError):
    logger.error(f"Business error: {exc.message}")
    return _error_response(400, exc.error, exc.message)


@router.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check():
    """Check if the service is ready to accept traffic.

    Returns:
        dict: Service readiness status and Kafka connection status.
    """
    kafka_ok = _check_kafka_connection()
    return {"status": "ready" if kafka_ok else "not_ready", "kafka": kafka_ok}


@router.post("/orders", response_model=OrderResponse, status_code=201)
def create_order(
    items: list[OrderItemRequest] = Body(..., min_length=1),
    x_user_id: str = Header(..., min_length=1),
):
    """Create an order from the requested items.

    Args:
        items: Requested (product, quantity) pairs
        x_user_id: Caller identity, owner of the order

    Returns:
        OrderResponse: The pending order
    """
    order = state.require_orders().create_order(items, user_id=x_user_id)
    return OrderResponse.model_validate(order)


@router.post("/orders/{order_id}/pay", response_model=OrderResponse)
def pay_order(order_id: uuid.UUID):
    """Pay a pending order; stock is settled asynchronously afterwards."""
    order = state.require_orders().pay_order(order_id)
    return OrderResponse.model_validate(order)


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: uuid.UUID):
    order = state.require_orders().get_order(order_id)
    return OrderResponse.model_validate(order)


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(payload: ProductCreate):
    ledger = state.require_ledger()
    return ProductResponse.model_validate(ledger.create_product(state.session_factory, payload))


@router.get("/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: uuid.UUID):
    state.require_ledger()
    with unit_of_work(state.session_factory) as session:
        product = repository.get_product(session, product_id)
    return ProductResponse.model_validate(product)


@router.put("/products/{product_id}", response_model=ProductResponse)
def update_product(product_id: uuid.UUID, payload: ProductUpdate):
    ledger = state.require_ledger()
    return ProductResponse.model_validate(ledger.update_product(state.session_factory, product_id, payload))


@router.post("/products/{product_id}/restock", response_model=ProductResponse)
def restock_product(product_id: uuid.UUID, payload: RestockRequest):
    ledger = state.require_ledger()
    return ProductResponse.model_validate(ledger.restock(state.session_factory, product_id, payload.quantity))


def _check_kafka_connection() -> bool:
    """Check if Kafka connection is available.

    Returns:
        bool: True if Kafka is accessible, False otherwise.
    """
    if state.settings is None:
        return False
    try:
        admin = AdminClient({"bootstrap.servers": state.settings.kafka_bootstrap_servers})
        return bool(admin.list_topics(timeout=5))
    except Exception as e:
        logger.opt(exception=e).error(f"Kafka connection failed: {e}")
        return False


app.include_router(router)
