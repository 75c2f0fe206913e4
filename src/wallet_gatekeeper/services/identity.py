"""Identity context propagation into the data layer.

The verified wallet address is handed to a database function that stores it
in the connection's session scope; row-level security policies read it back
so every later query on the same session only sees that wallet's rows.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wallet_gatekeeper.core.errors import IdentityBindFailed
from wallet_gatekeeper.core.security import Identity
from wallet_gatekeeper.core.settings import Settings, settings

logger = logging.getLogger(__name__)


class IdentityContextPropagator:
    """Bind a verified identity to a request's database session."""

    def __init__(self, bind_function: str = "set_current_wallet_address") -> None:
        # Interpolated into SQL; Settings restricts it to a plain identifier.
        self._statement = text(f"SELECT {bind_function}(:wallet_address)")
        self.bind_function = bind_function

    @classmethod
    def from_settings(cls, config: Settings = settings) -> IdentityContextPropagator:
        return cls(config.rls_bind_function)

    def bind(self, session: Session, identity: Identity) -> None:
        """Set ``identity`` as the active wallet for ``session``.

        Raises:
            IdentityBindFailed: The data layer did not accept the context.
        """
        try:
            session.execute(self._statement, {"wallet_address": identity.wallet_address})
        except SQLAlchemyError as err:
            logger.error(
                "Failed to bind wallet %s via %s: %s",
                identity.wallet_address,
                self.bind_function,
                err,
            )
            raise IdentityBindFailed(str(err)) from err
        logger.debug("Bound wallet context %s", identity.wallet_address)
