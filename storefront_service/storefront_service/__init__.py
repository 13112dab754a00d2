"""Storefront order fulfillment and inventory service."""

__version__ = "0.1.0"
