"""Bearer token verification built on python-jose."""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass

from jose import jwt
from jose.exceptions import JOSEError

from wallet_gatekeeper.core.errors import (
    InvalidSignature,
    MissingCredential,
    MissingIdentityClaim,
)
from wallet_gatekeeper.core.settings import Settings, settings

logger = logging.getLogger(__name__)

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")
_BEARER_PREFIX = "bearer "


def normalize_wallet_address(value: str | None) -> str | None:
    """Return the lowercase form of an EVM address, or None if it is not one."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    if not WALLET_ADDRESS_PATTERN.match(candidate):
        return None
    return candidate


@dataclass(frozen=True)
class Identity:
    """Verified caller identity; lives for a single request."""

    wallet_address: str

    def __post_init__(self) -> None:
        if not WALLET_ADDRESS_PATTERN.match(self.wallet_address):
            raise ValueError("wallet_address must be a lowercase EVM address")


class TokenVerifier:
    """Validate signed bearer tokens against one configured public key.

    Only the configured asymmetric algorithm is accepted; the token header
    never selects the algorithm. The issuer claim must match exactly and the
    subject claim is the caller's wallet address.
    """

    def __init__(self, public_key: str | None, *, algorithm: str, issuer: str) -> None:
        self._public_key = public_key
        self._algorithm = algorithm
        self._issuer = issuer

    @classmethod
    def from_settings(cls, config: Settings = settings) -> TokenVerifier:
        return cls(config.jwt_public_key, algorithm=config.jwt_algorithm, issuer=config.jwt_issuer)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @staticmethod
    def extract_bearer(authorization: str | None) -> str | None:
        """Return the token from an ``Authorization: Bearer <token>`` header."""
        if not authorization:
            return None
        value = authorization.strip()
        if value.lower().startswith(_BEARER_PREFIX):
            token = value[len(_BEARER_PREFIX):].strip()
            return token or None
        return None

    def verify(self, token: str | None) -> Identity:
        """Return the identity carried by ``token``.

        Raises:
            MissingCredential: No token was supplied.
            InvalidSignature: Signature, algorithm, issuer or expiry check failed.
            MissingIdentityClaim: The token is valid but carries no wallet address.
        """
        if not token:
            raise MissingCredential()

        if not self._public_key:
            logger.error("JWT public key is not configured; rejecting bearer token")
            raise InvalidSignature("public key not configured")

        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"verify_aud": False, "require_exp": True},
            )
        except JOSEError as err:
            logger.warning("JWT verification failed: %s", err)
            raise InvalidSignature(str(err)) from err

        wallet_address = normalize_wallet_address(payload.get("sub"))
        if wallet_address is None:
            logger.warning("JWT verified but subject is not a wallet address")
            raise MissingIdentityClaim()
        return Identity(wallet_address=wallet_address)


def fingerprint(*parts: str, key: str = "") -> str:
    """Return a keyed SHA-256 fingerprint of the joined parts.

    Used for lookups over encrypted rows without storing the plaintext.
    """
    message = "\x1f".join(parts).encode("utf-8")
    return hmac.new((key or settings.secret_key).encode("utf-8"), message, hashlib.sha256).hexdigest()
