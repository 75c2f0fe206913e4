# tests/v1/test_identity.py
"""Tests for binding a verified identity to the request session."""

import pytest

from tests.conftest import BOUND_WALLETS, OTHER_WALLET, WALLET
from wallet_gatekeeper.core.errors import IdentityBindFailed
from wallet_gatekeeper.core.security import Identity
from wallet_gatekeeper.core.settings import settings
from wallet_gatekeeper.services.identity import IdentityContextPropagator


class TestIdentityContextPropagator:
    """Test the data-layer bind call."""

    def test_bind_passes_wallet_to_function(self, db_session):
        IdentityContextPropagator().bind(db_session, Identity(wallet_address=WALLET))
        assert BOUND_WALLETS == [WALLET]

    def test_each_bind_uses_its_own_identity(self, db_session):
        propagator = IdentityContextPropagator()
        propagator.bind(db_session, Identity(wallet_address=WALLET))
        propagator.bind(db_session, Identity(wallet_address=OTHER_WALLET))
        assert BOUND_WALLETS == [WALLET, OTHER_WALLET]

    def test_unknown_function_fails_bind(self, db_session):
        propagator = IdentityContextPropagator("no_such_bind_function")
        with pytest.raises(IdentityBindFailed) as exc_info:
            propagator.bind(db_session, Identity(wallet_address=WALLET))
        assert exc_info.value.status_code == 500
        assert exc_info.value.to_body() == {"success": False, "error": "Internal server error"}
        assert BOUND_WALLETS == []

    def test_from_settings_uses_configured_function(self):
        propagator = IdentityContextPropagator.from_settings()
        assert propagator.bind_function == settings.rls_bind_function
