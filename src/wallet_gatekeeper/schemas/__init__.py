# src/wallet_gatekeeper/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .common import ErrorResponse, MessageResponse
from .recipient import Recipient, RecipientListResponse, RecipientResponse, RecipientWithId

__all__ = [
    "ErrorResponse",
    "MessageResponse",
    "Recipient",
    "RecipientListResponse",
    "RecipientResponse",
    "RecipientWithId",
]
