"""Saved recipient endpoints; recipient details are only stored encrypted."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request, status
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wallet_gatekeeper.api.v1.dependencies import EncryptionDep, GateDep
from wallet_gatekeeper.core.errors import GatekeeperError, InvalidRequest, ResourceNotFound
from wallet_gatekeeper.core.security import fingerprint
from wallet_gatekeeper.core.settings import settings
from wallet_gatekeeper.models import SavedRecipient
from wallet_gatekeeper.schemas.common import ErrorResponse, MessageResponse
from wallet_gatekeeper.schemas.recipient import (
    Recipient,
    RecipientListResponse,
    RecipientResponse,
    RecipientWithId,
)
from wallet_gatekeeper.services.encryption import EncryptionGateway

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/recipients",
    tags=["recipients"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)

REQUIRED_FIELDS_MESSAGE = (
    "Missing required fields: name, institution, institutionCode, accountIdentifier, type"
)
INVALID_TYPE_MESSAGE = "Invalid type. Must be 'bank' or 'mobile_money'"


def _with_id(row: SavedRecipient, recipient: Recipient) -> RecipientWithId:
    return RecipientWithId(id=row.id, **recipient.model_dump())


def _parse_recipient(payload: Any) -> Recipient:
    if not isinstance(payload, dict):
        raise InvalidRequest(REQUIRED_FIELDS_MESSAGE)
    try:
        return Recipient.model_validate(payload)
    except ValidationError as err:
        if any(error["loc"] == ("type",) and error["type"] == "literal_error" for error in err.errors()):
            raise InvalidRequest(INVALID_TYPE_MESSAGE) from err
        raise InvalidRequest(REQUIRED_FIELDS_MESSAGE) from err


def _recipient_fingerprint(recipient: Recipient) -> str:
    return fingerprint(recipient.institution_code, recipient.account_identifier)


def _evict_oldest_if_full(db: Session, wallet_address: str) -> None:
    count = (
        db.query(func.count())
        .select_from(SavedRecipient)
        .filter(SavedRecipient.normalized_wallet_address == wallet_address)
        .scalar()
        or 0
    )
    if count < settings.max_recipients_per_wallet:
        return
    oldest = (
        db.query(SavedRecipient)
        .filter(SavedRecipient.normalized_wallet_address == wallet_address)
        .order_by(SavedRecipient.created_at.asc(), SavedRecipient.id.asc())
        .first()
    )
    if oldest is not None:
        logger.info("Evicting oldest recipient %s for wallet %s", oldest.id, wallet_address)
        db.delete(oldest)
        db.flush()


@router.get("", response_model=RecipientListResponse)
async def list_recipients(gate: GateDep, encryption: EncryptionDep) -> RecipientListResponse:
    """Return the caller's saved recipients, newest first."""
    db = gate.session
    rows = (
        db.query(SavedRecipient)
        .filter(SavedRecipient.normalized_wallet_address == gate.wallet_address)
        .order_by(SavedRecipient.created_at.desc(), SavedRecipient.id.desc())
        .all()
    )
    data = [_with_id(row, encryption.decrypt(row.encrypted_recipient)) for row in rows]
    return RecipientListResponse(data=data)


@router.post("", response_model=RecipientResponse, status_code=status.HTTP_201_CREATED)
async def save_recipient(
    request: Request,
    gate: GateDep,
    encryption: EncryptionDep,
) -> RecipientResponse:
    """Encrypt and save a recipient, replacing an existing entry for the same account."""
    try:
        payload = await request.json()
    except ValueError as err:
        raise InvalidRequest(REQUIRED_FIELDS_MESSAGE) from err

    recipient = _parse_recipient(payload)
    row = _store_recipient(gate.session, encryption, gate.wallet_address, recipient)
    return RecipientResponse(data=_with_id(row, recipient))


def _store_recipient(
    db: Session,
    encryption: EncryptionGateway,
    wallet_address: str,
    recipient: Recipient,
) -> SavedRecipient:
    # Encrypt before touching the table so a failure aborts the write.
    ciphertext = encryption.encrypt(recipient)
    recipient_fingerprint = _recipient_fingerprint(recipient)

    try:
        row = (
            db.query(SavedRecipient)
            .filter(
                SavedRecipient.normalized_wallet_address == wallet_address,
                SavedRecipient.recipient_fingerprint == recipient_fingerprint,
            )
            .first()
        )
        if row is None:
            _evict_oldest_if_full(db, wallet_address)
            row = SavedRecipient(
                normalized_wallet_address=wallet_address,
                recipient_fingerprint=recipient_fingerprint,
                encrypted_recipient=ciphertext,
            )
            db.add(row)
        else:
            row.encrypted_recipient = ciphertext
        db.flush()
        db.commit()
    except SQLAlchemyError as err:
        db.rollback()
        logger.error("Failed to save recipient for wallet %s: %s", wallet_address, err)
        raise GatekeeperError(str(err)) from err

    logger.info("Saved recipient %s for wallet %s", row.id, wallet_address)
    return row


@router.delete("", response_model=MessageResponse)
async def delete_recipient(
    gate: GateDep,
    recipient_id: int | None = Query(default=None, alias="id"),
) -> MessageResponse:
    """Remove one of the caller's saved recipients."""
    if recipient_id is None:
        raise InvalidRequest("Recipient ID is required")

    db = gate.session
    row = (
        db.query(SavedRecipient)
        .filter(
            SavedRecipient.id == recipient_id,
            SavedRecipient.normalized_wallet_address == gate.wallet_address,
        )
        .first()
    )
    if row is None:
        raise ResourceNotFound("Recipient not found")

    db.delete(row)
    db.commit()
    logger.info("Deleted recipient %s for wallet %s", recipient_id, gate.wallet_address)
    return MessageResponse(message="Recipient deleted successfully")
