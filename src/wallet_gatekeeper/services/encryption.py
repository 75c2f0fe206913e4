# src/wallet_gatekeeper/services/encryption.py
"""Encryption gateway for recipient PII.

The gateway only marshals records to and from the transport encoding of an
external primitive: JSON plaintext goes in, base64 ciphertext comes out, and
the reverse. The key reference is fixed configuration and never travels in
the record. Nothing here logs record contents.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import Any, Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.orm import Session

from wallet_gatekeeper.core.errors import DecryptionError, EncryptionError
from wallet_gatekeeper.core.settings import Settings, settings
from wallet_gatekeeper.schemas.recipient import Recipient

logger = logging.getLogger(__name__)

_NONCE_BYTES = 12
_HKDF_INFO = b"wallet-gatekeeper/recipient-data"


class EncryptionPrimitive(Protocol):
    """External encrypt/decrypt calls addressed by a key reference."""

    def encrypt(self, plaintext_json: str, key_reference: str) -> str | None: ...

    def decrypt(self, ciphertext_b64: str, key_reference: str) -> Any: ...


class DatabaseEncryptionPrimitive:
    """Call the data store's ``encrypt_recipient_data``/``decrypt_recipient_data`` functions."""

    _ENCRYPT = text("SELECT encrypt_recipient_data(:recipient_json, :encryption_key)")
    _DECRYPT = text("SELECT decrypt_recipient_data(:encrypted_data, :encryption_key)")

    def __init__(self, session: Session) -> None:
        self._session = session

    def encrypt(self, plaintext_json: str, key_reference: str) -> str | None:
        return self._session.execute(
            self._ENCRYPT,
            {"recipient_json": plaintext_json, "encryption_key": key_reference},
        ).scalar()

    def decrypt(self, ciphertext_b64: str, key_reference: str) -> Any:
        return self._session.execute(
            self._DECRYPT,
            {"encrypted_data": ciphertext_b64, "encryption_key": key_reference},
        ).scalar()


class LocalEncryptionPrimitive:
    """AES-256-GCM in process, keyed by HKDF over the key reference.

    Output is ``base64(nonce || ciphertext || tag)``, matching the transport
    encoding of the database functions.
    """

    @staticmethod
    def _aead(key_reference: str) -> AESGCM:
        key = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=_HKDF_INFO,
        ).derive(key_reference.encode("utf-8"))
        return AESGCM(key)

    def encrypt(self, plaintext_json: str, key_reference: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        sealed = self._aead(key_reference).encrypt(nonce, plaintext_json.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext_b64: str, key_reference: str) -> str:
        raw = base64.b64decode(ciphertext_b64, validate=True)
        if len(raw) <= _NONCE_BYTES:
            raise ValueError("ciphertext too short")
        nonce, sealed = raw[:_NONCE_BYTES], raw[_NONCE_BYTES:]
        return self._aead(key_reference).decrypt(nonce, sealed, None).decode("utf-8")


def _unwrap_decrypted(data: Any) -> str:
    """Return the JSON text from whatever shape the primitive produced."""
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("utf-8")
    if isinstance(data, dict):
        inner = data.get("decrypted_data") or data.get("result")
        if isinstance(inner, str):
            return inner
        return json.dumps(data)
    raise TypeError(f"unexpected decrypt result type {type(data).__name__}")


class EncryptionGateway:
    """Move recipients across the plaintext/ciphertext boundary."""

    def __init__(self, primitive: EncryptionPrimitive, key_reference: str | None) -> None:
        self._primitive = primitive
        self._key_reference = key_reference

    def _require_key(self, error: type[EncryptionError] | type[DecryptionError]) -> str:
        if not self._key_reference:
            logger.error("Encryption key reference is not configured")
            raise error("encryption key reference not configured")
        return self._key_reference

    def encrypt(self, record: Recipient) -> bytes:
        """Return the ciphertext for ``record``.

        Raises:
            EncryptionError: The primitive failed or returned unusable output.
        """
        key_reference = self._require_key(EncryptionError)
        plaintext = json.dumps(record.to_wire(), separators=(",", ":"), sort_keys=True)

        try:
            encoded = self._primitive.encrypt(plaintext, key_reference)
        except Exception as err:
            logger.error("Recipient encryption failed: %s", type(err).__name__)
            raise EncryptionError("primitive failed") from err

        if not encoded:
            logger.error("Recipient encryption returned no ciphertext")
            raise EncryptionError("empty ciphertext")

        # Postgres encode(..., 'base64') wraps lines at 76 characters.
        try:
            ciphertext = base64.b64decode("".join(encoded.split()), validate=True)
        except (binascii.Error, ValueError, TypeError, AttributeError) as err:
            logger.error("Recipient encryption returned malformed ciphertext")
            raise EncryptionError("malformed ciphertext") from err

        if not ciphertext or ciphertext == plaintext.encode("utf-8"):
            logger.error("Recipient encryption returned the plaintext unchanged")
            raise EncryptionError("passthrough ciphertext")
        return ciphertext

    def decrypt(self, blob: bytes | None) -> Recipient:
        """Return the recipient sealed in ``blob``.

        Raises:
            DecryptionError: The blob is missing or corrupt, or the primitive failed.
        """
        key_reference = self._require_key(DecryptionError)
        if not blob:
            logger.error("Recipient decryption called without ciphertext")
            raise DecryptionError("missing ciphertext")

        try:
            data = self._primitive.decrypt(base64.b64encode(bytes(blob)).decode("ascii"), key_reference)
        except Exception as err:
            logger.error("Recipient decryption failed: %s", type(err).__name__)
            raise DecryptionError("primitive failed") from err

        if data is None:
            logger.error("Recipient decryption returned null")
            raise DecryptionError("null plaintext")

        try:
            return Recipient.model_validate(json.loads(_unwrap_decrypted(data)))
        except (TypeError, ValueError, ValidationError) as err:
            logger.error("Decrypted recipient payload is invalid: %s", type(err).__name__)
            raise DecryptionError("invalid plaintext") from err


def get_encryption_gateway(session: Session, config: Settings = settings) -> EncryptionGateway:
    """Build the gateway for ``session`` using the configured backend."""
    primitive: EncryptionPrimitive
    if config.encryption_backend == "local":
        primitive = LocalEncryptionPrimitive()
    else:
        primitive = DatabaseEncryptionPrimitive(session)
    return EncryptionGateway(primitive, config.encryption_key)
