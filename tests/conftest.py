# tests/conftest.py
from __future__ import annotations

import os
import textwrap
import time
from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _generate_rsa_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


PRIVATE_KEY_PEM, PUBLIC_KEY_PEM = _generate_rsa_pair()
OTHER_PRIVATE_KEY_PEM, _ = _generate_rsa_pair()

TEST_ISSUER = "thirdweb.com"
WALLET = "0xabc0000000000000000000000000000000000001"
OTHER_WALLET = "0xdef0000000000000000000000000000000000002"
INTERNAL_KEY = "internal-test-key"

os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_PUBLIC_KEY"] = PUBLIC_KEY_PEM
os.environ["JWT_ISSUER"] = TEST_ISSUER
os.environ["JWT_ALGORITHM"] = "RS256"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-reference"
os.environ["ENCRYPTION_BACKEND"] = "database"
os.environ["INTERNAL_API_KEY"] = INTERNAL_KEY
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from wallet_gatekeeper.api.v1.dependencies import get_gatekeeper  # noqa: E402
from wallet_gatekeeper.core.security import TokenVerifier  # noqa: E402
from wallet_gatekeeper.db.session import Base  # noqa: E402
from wallet_gatekeeper.db.session import get_db as app_get_session  # noqa: E402
from wallet_gatekeeper.main import app as fastapi_app  # noqa: E402
from wallet_gatekeeper.services.encryption import LocalEncryptionPrimitive  # noqa: E402
from wallet_gatekeeper.services.gatekeeper import RequestGatekeeper  # noqa: E402
from wallet_gatekeeper.services.identity import IdentityContextPropagator  # noqa: E402
from wallet_gatekeeper.services.rate_limit import RateLimiter, RateLimitPolicy  # noqa: E402

TEST_DB_URL = "sqlite://"

# Wallets handed to the stand-in for the data layer's bind function.
BOUND_WALLETS: list[str] = []

_LOCAL_PRIMITIVE = LocalEncryptionPrimitive()


def _set_current_wallet_address(wallet_address: str) -> None:
    BOUND_WALLETS.append(wallet_address)


def wrap_base64(encoded: str, width: int = 76) -> str:
    """Wrap base64 text the way Postgres ``encode(..., 'base64')`` does."""
    return "\n".join(textwrap.wrap(encoded, width))


def _pg_encrypt_recipient_data(recipient_json: str, encryption_key: str) -> str:
    return wrap_base64(_LOCAL_PRIMITIVE.encrypt(recipient_json, encryption_key))


def _pg_decrypt_recipient_data(encrypted_data: str, encryption_key: str) -> str:
    return _LOCAL_PRIMITIVE.decrypt("".join(encrypted_data.split()), encryption_key)


def _register_data_layer_functions(dbapi_connection: Any, _connection_record: Any) -> None:
    """Stand in for the Postgres functions with SQLite user functions."""
    dbapi_connection.create_function("set_current_wallet_address", 1, _set_current_wallet_address)
    dbapi_connection.create_function("encrypt_recipient_data", 2, _pg_encrypt_recipient_data)
    dbapi_connection.create_function("decrypt_recipient_data", 2, _pg_decrypt_recipient_data)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _register_data_layer_functions)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Routes commit, so wipe every table between tests.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(autouse=True)
def clear_bound_wallets() -> Iterator[None]:
    BOUND_WALLETS.clear()
    yield
    BOUND_WALLETS.clear()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(RateLimitPolicy(points=100, duration_seconds=60, block_seconds=60), clock=clock)


@pytest.fixture()
def verifier() -> TokenVerifier:
    return TokenVerifier(PUBLIC_KEY_PEM, algorithm="RS256", issuer=TEST_ISSUER)


@pytest.fixture()
def gatekeeper(limiter: RateLimiter, verifier: TokenVerifier) -> RequestGatekeeper:
    return RequestGatekeeper(limiter, verifier, IdentityContextPropagator())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    gatekeeper: RequestGatekeeper,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_gatekeeper] = lambda: gatekeeper
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_gatekeeper, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """Return a factory for RS256 tokens signed by the configured issuer's key."""

    def _make_token(
        sub: str | None = WALLET,
        *,
        issuer: str | None = TEST_ISSUER,
        expires_in: int = 3600,
        key: str = PRIVATE_KEY_PEM,
        algorithm: str = "RS256",
        **extra: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {"iat": now, "exp": now + expires_in, **extra}
        if sub is not None:
            claims["sub"] = sub
        if issuer is not None:
            claims["iss"] = issuer
        return jwt.encode(claims, key, algorithm=algorithm)

    return _make_token


@pytest.fixture()
def auth_headers(make_token: Callable[..., str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}", "X-Forwarded-For": "203.0.113.7"}
