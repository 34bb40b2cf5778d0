"""Route group exports."""

from . import delivery, finance, health, orders, routes

__all__ = ["delivery", "finance", "health", "orders", "routes"]
