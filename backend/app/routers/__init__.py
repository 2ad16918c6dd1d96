"""Routers package."""

from .billing import router as billing_router
from .invoices import router as invoices_router

__all__ = [
    "billing_router",
    "invoices_router",
]
