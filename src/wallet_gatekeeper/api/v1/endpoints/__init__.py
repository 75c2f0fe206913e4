# src/wallet_gatekeeper/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .internal import router as internal_router
from .recipients import router as recipients_router
from .system import router as system_router

__all__ = [
    "internal_router",
    "recipients_router",
    "system_router",
]
