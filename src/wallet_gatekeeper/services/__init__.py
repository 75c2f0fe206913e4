# src/wallet_gatekeeper/services/__init__.py
"""Gatekeeper services: rate limiting, identity binding and the encryption boundary."""

from .encryption import EncryptionGateway
from .gatekeeper import GateContext, RequestGatekeeper
from .identity import IdentityContextPropagator
from .rate_limit import RateLimiter, RateLimitResult

__all__ = [
    "EncryptionGateway",
    "GateContext",
    "IdentityContextPropagator",
    "RateLimitResult",
    "RateLimiter",
    "RequestGatekeeper",
]
