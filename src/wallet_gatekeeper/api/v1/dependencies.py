"""Shared API dependencies for the request gate and common functionality."""

from threading import Lock
from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from wallet_gatekeeper.core.security import TokenVerifier
from wallet_gatekeeper.db.session import get_db
from wallet_gatekeeper.services.encryption import EncryptionGateway, get_encryption_gateway
from wallet_gatekeeper.services.gatekeeper import GateContext, RequestGatekeeper
from wallet_gatekeeper.services.identity import IdentityContextPropagator
from wallet_gatekeeper.services.rate_limit import get_rate_limiter

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]

_gatekeeper: RequestGatekeeper | None = None
_gatekeeper_lock = Lock()


def get_gatekeeper() -> RequestGatekeeper:
    """Return the process-wide gatekeeper, built once from settings."""
    global _gatekeeper
    if _gatekeeper is None:
        with _gatekeeper_lock:
            if _gatekeeper is None:
                _gatekeeper = RequestGatekeeper(
                    get_rate_limiter(),
                    TokenVerifier.from_settings(),
                    IdentityContextPropagator.from_settings(),
                )
    return _gatekeeper


GatekeeperDep = Annotated[RequestGatekeeper, Depends(get_gatekeeper)]


def require_identity(
    request: Request,
    response: Response,
    db: SessionDep,
    gatekeeper: GatekeeperDep,
) -> GateContext:
    """Admit the request through the gate and expose the bound identity.

    Failures raise ``GatekeeperError`` subclasses; the application's exception
    handler renders them with the rate-limit headers attached.
    """
    context = gatekeeper.admit(request, db)
    response.headers.update(context.rate_limit.as_headers())
    return context


# Type alias for the admitted request context
GateDep = Annotated[GateContext, Depends(require_identity)]


def get_encryption_gateway_dep(db: SessionDep) -> EncryptionGateway:
    """Get EncryptionGateway dependency bound to the request's session."""
    return get_encryption_gateway(db)


EncryptionDep = Annotated[EncryptionGateway, Depends(get_encryption_gateway_dep)]
