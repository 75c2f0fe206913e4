"""Internal wallet-context endpoint for trusted server-side callers."""

from __future__ import annotations

import hmac
import logging
from typing import Any

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse

from wallet_gatekeeper.api.v1.dependencies import SessionDep
from wallet_gatekeeper.core.errors import AuthError, GatekeeperError, InvalidRequest
from wallet_gatekeeper.core.security import Identity, normalize_wallet_address
from wallet_gatekeeper.core.settings import settings
from wallet_gatekeeper.services.identity import IdentityContextPropagator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


class InternalAuthFailed(AuthError):
    public_message = "Unauthorized"


def _check_internal_auth(supplied: str | None) -> None:
    expected = settings.internal_api_key
    if not supplied or not expected or not hmac.compare_digest(supplied, expected):
        raise InternalAuthFailed()


@router.post("/wallet-context")
async def set_wallet_context(
    request: Request,
    db: SessionDep,
    x_internal_auth: str | None = Header(default=None),
) -> JSONResponse:
    """Bind a wallet address to the data layer on behalf of an internal caller."""
    # Authenticate before the body is read.
    _check_internal_auth(x_internal_auth)

    try:
        payload: Any = await request.json()
    except ValueError as err:
        raise InvalidRequest("Invalid wallet address") from err

    raw_address = payload.get("walletAddress") if isinstance(payload, dict) else None
    if not raw_address or not isinstance(raw_address, str):
        raise InvalidRequest("Invalid wallet address")

    wallet_address = normalize_wallet_address(raw_address)
    if wallet_address is None:
        raise InvalidRequest("Invalid wallet address format")

    try:
        IdentityContextPropagator.from_settings().bind(db, Identity(wallet_address=wallet_address))
    except GatekeeperError:
        logger.error("Internal wallet context bind failed for %s", wallet_address)
        raise

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "success": True,
            "message": "Wallet context set successfully",
            "walletAddress": wallet_address,
        },
    )
