"""Pytest configuration and shared fixtures."""

import os
import time
from typing import Callable, Dict, Optional

# Settings are read at import time; point the app at SQLite before importing it.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import jwt
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.database.base import Base
from app.database import models  # noqa: F401
from app.main import app
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Mint HS256 access tokens accepted by the authentication middleware."""

    def _make_token(role: str = "agent", sub: str = "user-1", expires_in: int = 3600,
                    secret: Optional[str] = None) -> str:
        now = int(time.time())
        payload = {
            "sub": sub,
            "email": f"{sub}@crm.test",
            "role": role,
            "iat": now,
            "exp": now + expires_in,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        }
        return jwt.encode(payload, secret or settings.jwt_secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token) -> Callable[..., Dict[str, str]]:
    def _auth_headers(role: str = "agent") -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(role=role)}"}

    return _auth_headers


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine with working SAVEPOINTs.

    pysqlite's implicit transaction handling breaks SAVEPOINT, so the driver
    is put in autocommit mode and BEGIN is emitted explicitly.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker):
    """Database session for the code under test."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def make_customer(db_session):
    """Insert a customer, optionally with identities, and commit."""
    customers = CustomerRepository(db_session)
    identities = IdentityRepository(db_session)

    async def _make_customer(identity_rows=(), **fields):
        customer = await customers.create(**fields)
        for row in identity_rows:
            await identities.create_identity(customer_id=customer.id, **row)
        await db_session.commit()
        return customer

    return _make_customer
