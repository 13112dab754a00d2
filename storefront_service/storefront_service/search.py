"""Best-effort propagation of product state into the search index."""

import threading
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

import requests
from pydantic import BaseModel

from .logger import get_logger
from .models import Product

logger = get_logger("storefront.search")


class ProductDocument(BaseModel):
    """Denormalized read copy of a product."""

    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    stock_quantity: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductDocument":
        return cls(
            id=str(product.id),
            name=product.name,
            description=product.description,
            price=product.price,
            category=product.category,
            stock_quantity=product.stock_quantity,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class SearchIndex(Protocol):
    """Protocol defining the secondary read index."""

    def upsert(self, product_id: str, document: dict) -> None:
        """Insert or replace the document stored under ``product_id``."""
        ...

    def ensure_index(self) -> None:
        """Create the index if it does not exist yet."""
        ...


class ElasticsearchIndex:
    """Search index backed by the Elasticsearch REST API."""

    def __init__(self, base_url: str, index: str = "products", timeout: float = 5.0):
        """Initialize the index client.

        Args:
            base_url: Elasticsearch URL, e.g. ``http://elasticsearch:9200``
            index: Index name
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.index = index
        self.timeout = timeout

    def upsert(self, product_id: str, document: dict) -> None:
        response = requests.put(
            f"{self.base_url}/{self.index}/_doc/{product_id}",
            json=document,
            timeout=self.timeout,
        )
        response.raise_for_status()

    def ensure_index(self) -> None:
        response = requests.head(f"{self.base_url}/{self.index}", timeout=self.timeout)
        if response.status_code != 404:
            return

        logger.info(f"Creating '{self.index}' index in Elasticsearch...")
        response = requests.put(
            f"{self.base_url}/{self.index}",
            json={
                "settings": {"index": {"number_of_shards": 1, "number_of_replicas": 0}},
                "mappings": {
                    "properties": {
                        "name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
                        "description": {"type": "text"},
                        "price": {"type": "double"},
                        "category": {"type": "keyword"},
                        "stock_quantity": {"type": "integer"},
                        "created_at": {"type": "date"},
                        "updated_at": {"type": "date"},
                    }
                },
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info(f"Index '{self.index}' created")


class InMemorySearchIndex:
    """Dict-backed index for local runs and tests."""

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._lock = threading.Lock()

    def upsert(self, product_id: str, document: dict) -> None:
        with self._lock:
            self._documents[product_id] = document

    def ensure_index(self) -> None:
        pass

    def get(self, product_id: str) -> Optional[dict]:
        with self._lock:
            return self._documents.get(product_id)


class ProductSearchSync:
    """Keeps the search index eventually consistent with the product store.

    Every method logs and swallows failures: the authoritative store stays
    correct even when the index falls behind.
    """

    def __init__(self, index: SearchIndex):
        self.index = index

    def sync_product(self, product: Product) -> bool:
        """Upsert the read copy of ``product``.

        Returns:
            bool: True if the index accepted the document, False otherwise
        """
        try:
            document = ProductDocument.from_product(product)
            self.index.upsert(document.id, document.model_dump(mode="json"))
            logger.info(f"Product {product.id} synced to search index")
            return True
        except Exception as e:
            logger.error(f"Failed to sync product with id {product.id}: {e}")
            return False

    def sync_products(self, products: Iterable[Product]) -> None:
        seen = set()
        for product in products:
            if product.id in seen:
                continue
            seen.add(product.id)
            self.sync_product(product)

    def ensure_index(self) -> None:
        try:
            self.index.ensure_index()
        except Exception as e:
            logger.error(f"Could not prepare search index: {e}")


def build_search_index(search_url: Optional[str], index: str = "products") -> SearchIndex:
    if search_url:
        return ElasticsearchIndex(search_url, index=index)
    logger.warning("SEARCH_URL not set, using in-memory search index")
    return InMemorySearchIndex()
