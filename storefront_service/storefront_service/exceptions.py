"""Error taxonomy of the order fulfillment pipeline."""

from collections.abc import Sequence
from typing import Any


class StorefrontError(Exception):
    """Base class for every error the storefront raises on purpose."""

    error = "Business Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StorefrontError):
    """An unknown product or order id was requested."""

    error = "Not Found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found with id: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidOrderStateError(StorefrontError):
    """A transition was attempted outside of its legal source state."""

    error = "Invalid Order State"

    def __init__(self, message: str = "Orders can only be modified in pending status."):
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """Stock could not cover one or more order items.

    Attributes:
        shortfalls: One entry per offending item with ``product``,
            ``available`` and ``requested`` keys.
        order_id: The order the shortfall was detected for, when known.
        settled: Products already decremented before the shortfall was found.
    """

    error = "Insufficient Stock"

    def __init__(self, shortfalls: Sequence[dict], order_id: Any = None, settled: Sequence = ()):
        self.shortfalls = list(shortfalls)
        self.order_id = order_id
        self.settled = list(settled)
        super().__init__(self._describe(self.shortfalls))

    @staticmethod
    def _describe(shortfalls: list[dict]) -> str:
        if not shortfalls:
            return "Insufficient stock"
        return "\n".join(
            f"[Product: {s['product']}, Available: {s['available']}, Requested: {s['requested']}]"
            for s in shortfalls
        )


class UnexpectedError(StorefrontError):
    """Infrastructure failure; the only error class eligible for retry."""

    error = "Service Unavailable"
