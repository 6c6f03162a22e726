"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- In-memory SQLite database and sessions
- Stores, token codec and services wired to the test session
- Users in each role
- Fake realtime connections
"""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AT_SECRET", "test-access-secret-min-32-chars-long!!")
os.environ.setdefault("RT_SECRET", "test-refresh-secret-min-32-chars-long!")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-min-32-chars-long")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("RUN_MIGRATIONS", "false")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")
os.environ.setdefault("APP_URL", "http://api.test")

from supportdesk.config import settings
from supportdesk.db.models import Base, User
from supportdesk.db.stores import TicketStore, UserStore
from supportdesk.models.domain import TokenClaims
from supportdesk.services.auth import AuthService
from supportdesk.services.links import ConsumedLinkLedger, OneTimeLinkService
from supportdesk.services.realtime import Connection
from supportdesk.services.tickets import TicketAuthorizationEngine
from supportdesk.services.tokens import TokenCodec, TokenService

# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test (one shared connection)."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_store(db_session: AsyncSession) -> UserStore:
    return UserStore(db_session)


@pytest.fixture
def ticket_store(db_session: AsyncSession) -> TicketStore:
    return TicketStore(db_session)


# ============================================================================
# Class-level state
# ============================================================================


@pytest.fixture(autouse=True)
def reset_class_state():
    """Reset process-wide in-memory state before each test."""
    ConsumedLinkLedger._consumed = {}
    ConsumedLinkLedger._last_cleanup = 0
    AuthService._sessions = {}
    yield
    ConsumedLinkLedger._consumed = {}
    AuthService._sessions = {}


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def token_codec() -> TokenCodec:
    """Codec with the test settings' secrets and lifetimes."""
    return TokenCodec(
        access_secret=settings.AT_SECRET,
        refresh_secret=settings.RT_SECRET,
        access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
    )


@pytest.fixture
def token_service(user_store: UserStore, token_codec: TokenCodec) -> TokenService:
    return TokenService(user_store, token_codec)


@pytest.fixture
def mailer() -> AsyncMock:
    """Mail collaborator that records sent links."""
    mock = AsyncMock()
    mock.send_magic_link = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def link_service(user_store: UserStore, mailer: AsyncMock) -> OneTimeLinkService:
    return OneTimeLinkService(
        user_store,
        mailer,
        secret=settings.SESSION_SECRET,
        ttl=timedelta(minutes=settings.magic_link_ttl_minutes),
    )


@pytest.fixture
def ticket_engine(user_store: UserStore, ticket_store: TicketStore) -> TicketAuthorizationEngine:
    return TicketAuthorizationEngine(user_store, ticket_store)


@pytest.fixture
def oauth_provider() -> AsyncMock:
    """Google provider double; tests set return values as needed."""
    provider = AsyncMock()
    provider.get_authorization_url = lambda state: f"https://accounts.example/auth?state={state}"
    return provider


@pytest.fixture
def auth_service(
    user_store: UserStore,
    token_service: TokenService,
    link_service: OneTimeLinkService,
    oauth_provider: AsyncMock,
) -> AuthService:
    return AuthService(user_store, token_service, link_service, oauth_provider)


# ============================================================================
# User Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def customer(user_store: UserStore) -> User:
    """A customer with no password."""
    return await user_store.create("casey@example.com", first_name="Casey", role="CUSTOMER")


@pytest_asyncio.fixture
async def other_customer(user_store: UserStore) -> User:
    """A second, unrelated customer."""
    return await user_store.create("morgan@example.com", first_name="Morgan", role="CUSTOMER")


@pytest_asyncio.fixture
async def agent(user_store: UserStore) -> User:
    """A support agent."""
    return await user_store.create("alex@support.example", first_name="Alex", role="AGENT")


# ============================================================================
# Realtime Fixtures
# ============================================================================


def make_connection(user: Any | None = None) -> Connection:
    """A connection whose sends are recorded by an AsyncMock."""
    sender = AsyncMock()
    sender.send_json = AsyncMock()
    claims = TokenClaims(
        sub=user.id if user is not None else uuid4(),
        email=user.email if user is not None else "someone@example.com",
        exp=0,
    )
    return Connection(sender=sender, claims=claims)


@pytest.fixture
def connection_factory():
    """Factory for fake realtime connections."""
    return make_connection
