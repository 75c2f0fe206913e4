# src/wallet_gatekeeper/main.py
"""Main entry point for the Wallet Gatekeeper application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wallet_gatekeeper.api.v1 import internal_router, recipients_router, system_router
from wallet_gatekeeper.core.errors import GatekeeperError, InvalidRequest
from wallet_gatekeeper.core.settings import settings
from wallet_gatekeeper.services.gatekeeper import error_response

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once from ``LOG_LEVEL``."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title="Wallet Gatekeeper API",
    description="Rate-limited, wallet-authenticated access to encrypted recipient data",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=["X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

# Include API routers
app.include_router(recipients_router, prefix="/api/v1")
app.include_router(internal_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(GatekeeperError)
async def gatekeeper_error_handler(request: Request, exc: GatekeeperError) -> JSONResponse:
    """Render gate and operation failures as the uniform envelope."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc.__cause__ is not None,
        )
    return error_response(exc, getattr(request.state, "rate_limit", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected malformed request on %s: %s", request.url.path, exc.errors())
    return error_response(InvalidRequest("Invalid request"), getattr(request.state, "rate_limit", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(GatekeeperError(), getattr(request.state, "rate_limit", None))


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("wallet_gatekeeper.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
