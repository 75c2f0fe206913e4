# src/wallet_gatekeeper/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import internal_router, recipients_router, system_router

__all__ = [
    "internal_router",
    "recipients_router",
    "system_router",
]
