"""System endpoints exposing non-secret runtime configuration."""

from __future__ import annotations

from fastapi import APIRouter

from wallet_gatekeeper.api.v1.dependencies import GatekeeperDep
from wallet_gatekeeper.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config(gatekeeper: GatekeeperDep) -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes keys, secrets and connection strings.
    """
    policy = gatekeeper.limiter.policy
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "auth": {
            "jwt_algorithm": gatekeeper.verifier.algorithm,
            "jwt_issuer": settings.jwt_issuer,
            "public_key_configured": bool(settings.jwt_public_key),
        },
        "rate_limit": {
            "points": policy.points,
            "duration_seconds": policy.duration_seconds,
            "block_seconds": policy.block_seconds,
        },
        "encryption": {
            "backend": settings.encryption_backend,
            "key_configured": bool(settings.encryption_key),
        },
    }
