"""
Pytest configuration and shared fixtures for backend tests.
"""

import os
import sys
from pathlib import Path

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("AUTH_SECRET", "test-auth-secret-0123456789abcdef0123456789")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("BASE_URL", "https://app.example.com")

import pytest
from typing import AsyncGenerator
from unittest.mock import MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import after path is set
from adapters.payments.stripe_adapter import StripeAdapter
from api.dependencies import (
    get_activity_writer,
    get_statement_store,
    get_stripe_adapter,
    get_token_service,
)
from core.security import PasswordHasher
from infrastructure.database.connection import get_db
from infrastructure.database.models import Base, Team, TeamMember, User
from services.activity_log import ActivityLogWriter
from services.statement_converter import StatementStore

# Low work factor keeps fixture setup fast
password_hasher = PasswordHasher(rounds=4)
TEST_PASSWORD = "testpassword123"


@pytest.fixture
async def db_engine(tmp_path):
    """Create a test database engine."""
    # File backed so the activity writer commits on its own connection
    # while the request session holds another
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def activity_writer(session_factory) -> ActivityLogWriter:
    return ActivityLogWriter(session_factory)


@pytest.fixture
def stripe_mock() -> MagicMock:
    """Stripe adapter double; async methods are AsyncMocks."""
    return MagicMock(spec=StripeAdapter)


@pytest.fixture
def statement_store(tmp_path) -> StatementStore:
    return StatementStore(base_path=str(tmp_path / "upload"))


async def create_user_with_team(
    db: AsyncSession,
    email: str,
    password: str = TEST_PASSWORD,
    name: str | None = None,
    team: Team | None = None,
    role: str = "owner",
) -> tuple[User, Team, TeamMember]:
    """Insert a user and a membership, creating the team unless one is given."""
    user = User(
        email=email,
        name=name,
        password_hash=password_hasher.hash(password),
        role=role,
    )
    db.add(user)
    if team is None:
        team = Team(name=f"{email}'s Team")
        db.add(team)
    await db.flush()

    member = TeamMember(user_id=user.id, team_id=team.id, role=role)
    db.add(member)
    await db.commit()
    return user, team, member


@pytest.fixture
async def owner(db_session: AsyncSession) -> tuple[User, Team, TeamMember]:
    """Create a team owner."""
    return await create_user_with_team(db_session, "owner@example.com", name="Team Owner")


@pytest.fixture
async def test_user(owner) -> User:
    return owner[0]


@pytest.fixture
async def test_team(owner) -> Team:
    return owner[1]


def session_cookie_for(user: User) -> dict[str, str]:
    """Cookie dict carrying a valid session for the user."""
    token, _ = get_token_service().issue(user.id)
    return {"session": token}


@pytest.fixture
async def async_client(
    db_session: AsyncSession,
    activity_writer: ActivityLogWriter,
    stripe_mock: MagicMock,
    statement_store: StatementStore,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    # Import app here to avoid circular imports
    from main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_activity_writer] = lambda: activity_writer
    app.dependency_overrides[get_stripe_adapter] = lambda: stripe_mock
    app.dependency_overrides[get_statement_store] = lambda: statement_store

    # Reset rate limiter state between tests to prevent cross-test 429s
    if hasattr(app.state, "limiter"):
        try:
            app.state.limiter.reset()
        except Exception:
            pass

    # https so the Secure session cookie round-trips
    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def auth_client(async_client: AsyncClient, test_user: User) -> AsyncClient:
    """Client signed in as the team owner."""
    async_client.cookies.update(session_cookie_for(test_user))
    return async_client
