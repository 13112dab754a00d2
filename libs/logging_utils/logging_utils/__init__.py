"""Logging utilities for storefront services."""

from .config import configure_logging, get_kafka_logger, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "get_kafka_logger",
]
