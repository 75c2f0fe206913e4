"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Uniform failure envelope; ``error`` is always a stable message."""

    success: bool = Field(False, description="Always false for failures.")
    error: str = Field(..., description="Stable, non-revealing error message.")


class MessageResponse(BaseModel):
    success: bool = True
    message: str
