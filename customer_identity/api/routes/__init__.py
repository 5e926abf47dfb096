"""API route modules."""

from . import customers, health

__all__ = ["customers", "health"]
