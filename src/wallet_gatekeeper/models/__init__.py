# src/wallet_gatekeeper/models/__init__.py
"""SQLAlchemy models for the Wallet Gatekeeper service."""

from .recipient import SavedRecipient

__all__ = ["SavedRecipient"]
