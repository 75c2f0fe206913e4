"""Error taxonomy for the request gatekeeper.

Every error carries the HTTP status it maps to and a stable public message.
The message is the only part that ever reaches a caller; whatever caused the
error is logged server-side and chained via ``raise ... from``.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import status


@dataclass(frozen=True)
class RateLimitMeta:
    """Rate-limit metadata attached to every gated response."""

    remaining: int
    reset_seconds: int

    def as_headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_seconds),
        }


class GatekeeperError(Exception):
    """Base class for failures converted into the uniform error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal server error"

    def __init__(self, detail: str | None = None, *, rate_limit: RateLimitMeta | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.rate_limit = rate_limit

    def to_body(self) -> dict[str, object]:
        return {"success": False, "error": self.public_message}


class RateLimitExceeded(GatekeeperError):
    """The client key exhausted its budget or is inside its block period."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    public_message = "Too many requests"


class AuthError(GatekeeperError):
    """Base class for bearer credential failures."""

    status_code = status.HTTP_401_UNAUTHORIZED
    public_message = "Invalid JWT"


class MissingCredential(AuthError):
    public_message = "Missing JWT"


class InvalidSignature(AuthError):
    public_message = "Invalid JWT"


class MissingIdentityClaim(AuthError):
    public_message = "Invalid JWT: Missing wallet address"


class IdentityBindFailed(GatekeeperError):
    """The data layer refused the identity context; never continue unscoped."""


class CryptoBoundaryError(GatekeeperError):
    """Base class for failures at the plaintext/ciphertext boundary."""


class EncryptionError(CryptoBoundaryError):
    public_message = "Failed to encrypt sensitive data"


class DecryptionError(CryptoBoundaryError):
    public_message = "Failed to decrypt sensitive data"


class InvalidRequest(GatekeeperError):
    """Client input rejected by an operation behind the gate."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, rate_limit: RateLimitMeta | None = None) -> None:
        super().__init__(message, rate_limit=rate_limit)
        self.public_message = message


class ResourceNotFound(InvalidRequest):
    status_code = status.HTTP_404_NOT_FOUND
