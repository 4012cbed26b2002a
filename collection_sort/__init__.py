"""Reorder a Shopify collection by product sales."""

__version__ = "0.1.0"
