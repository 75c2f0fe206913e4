"""Request gatekeeper: rate limit, verify, bind, then run the operation.

The steps run in that fixed order and stop at the first failure. Rate
limiting comes first so token verification cannot be used to amplify load.
Every response produced here carries the rate-limit headers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import Response

from wallet_gatekeeper.core.errors import GatekeeperError, RateLimitExceeded, RateLimitMeta
from wallet_gatekeeper.core.security import Identity, TokenVerifier
from wallet_gatekeeper.services.identity import IdentityContextPropagator
from wallet_gatekeeper.services.rate_limit import RateLimiter, client_key_from_headers

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateContext:
    """What a protected operation receives once the gate has admitted a request."""

    request: Request
    session: Session
    identity: Identity
    rate_limit: RateLimitMeta

    @property
    def wallet_address(self) -> str:
        return self.identity.wallet_address


class Operation(Protocol):
    async def __call__(self, context: GateContext) -> Response: ...


def error_response(error: GatekeeperError, rate_limit: RateLimitMeta | None = None) -> JSONResponse:
    """Render ``error`` as the uniform failure envelope."""
    meta = error.rate_limit or rate_limit
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_body(),
        headers=meta.as_headers() if meta else None,
    )


class RequestGatekeeper:
    """Compose the rate limiter, token verifier and identity propagator."""

    def __init__(
        self,
        limiter: RateLimiter,
        verifier: TokenVerifier,
        propagator: IdentityContextPropagator,
    ) -> None:
        self.limiter = limiter
        self.verifier = verifier
        self.propagator = propagator

    def admit(self, request: Request, session: Session) -> GateContext:
        """Run the gate for ``request`` and bind its identity to ``session``.

        The rate-limit metadata is stored on ``request.state.rate_limit`` as
        soon as it is known so later failures can still report it.

        Raises:
            RateLimitExceeded: The client key is over budget or blocked.
            AuthError: The bearer credential is missing or invalid.
            IdentityBindFailed: The data layer rejected the identity context.
        """
        client_key = client_key_from_headers(request.headers)
        result = self.limiter.consume(client_key)
        meta = result.meta
        request.state.rate_limit = meta

        if not result.admitted:
            raise RateLimitExceeded(rate_limit=meta)

        token = self.verifier.extract_bearer(request.headers.get("authorization"))
        try:
            identity = self.verifier.verify(token)
            self.propagator.bind(session, identity)
        except GatekeeperError as err:
            err.rate_limit = meta
            logger.info(
                "Gate rejected %s %s from %s: %s",
                request.method,
                request.url.path,
                client_key,
                type(err).__name__,
            )
            raise

        return GateContext(request=request, session=session, identity=identity, rate_limit=meta)

    async def handle(self, request: Request, session: Session, operation: Operation) -> Response:
        """Admit ``request``, run ``operation`` and return its response with metadata."""
        try:
            context = self.admit(request, session)
            response = await operation(context)
        except GatekeeperError as err:
            return error_response(err, getattr(request.state, "rate_limit", None))
        except Exception:
            logger.exception("Protected operation failed for %s %s", request.method, request.url.path)
            return error_response(GatekeeperError(), getattr(request.state, "rate_limit", None))

        response.headers.update(context.rate_limit.as_headers())
        return response
