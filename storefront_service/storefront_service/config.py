"""Environment-driven configuration for the storefront service."""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime settings read from the environment.

    Attributes:
        database_url (str): SQLAlchemy URL of the authoritative store.
        kafka_bootstrap_servers (str): Comma-separated Kafka broker addresses.
        kafka_consumer_group (str): Consumer group of the stock reconciler.
        order_paid_topic (str): Topic carrying order paid events.
        search_url (str | None): Elasticsearch base URL, in-memory index when unset.
        search_index (str): Name of the product search index.
        settlement_mode (str): ``partial`` keeps decrements applied before a
            shortfall, ``atomic`` rolls the whole order back.
        redelivery_backoff_seconds (float): Pause before a failed message is retried.
        log_level (str): Minimum log level.
        log_file (str | None): Optional rotating log file.
        log_json (bool): Emit structured JSON logs.
    """

    database_url: str = "sqlite:///./storefront.db"
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "storefront-stock"
    order_paid_topic: str = "orders.paid"
    search_url: Optional[str] = None
    search_index: str = "products"
    settlement_mode: Literal["partial", "atomic"] = "partial"
    redelivery_backoff_seconds: float = Field(default=1.0, ge=0)
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./storefront.db"),
            kafka_bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092"),
            kafka_consumer_group=os.getenv("KAFKA_CONSUMER_GROUP", "storefront-stock"),
            order_paid_topic=os.getenv("ORDER_PAID_TOPIC", "orders.paid"),
            search_url=os.getenv("SEARCH_URL") or None,
            search_index=os.getenv("SEARCH_INDEX", "products"),
            settlement_mode=os.getenv("SETTLEMENT_MODE", "partial").lower(),
            redelivery_backoff_seconds=float(os.getenv("REDELIVERY_BACKOFF_SECONDS", "1.0")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            log_json=os.getenv("LOG_JSON", "false").lower() == "true",
        )

    @property
    def atomic_settlement(self) -> bool:
        return self.settlement_mode == "atomic"
