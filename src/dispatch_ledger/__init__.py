"""Delivery route lifecycle and cash reconciliation service."""

__version__ = "0.1.0"
