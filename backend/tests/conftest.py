"""
ProfRate - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator, Dict, List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from faker import Faker
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set testing environment before any profrate import reads settings
os.environ['ENVIRONMENT'] = 'test'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test_profrate.db'
os.environ['SESSION_SECRET_KEY'] = 'test-session-secret-key-for-testing-only'
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['HUMAN_VERIFICATION_ENABLED'] = 'false'
os.environ['STATE_BACKEND'] = 'memory'
os.environ['LOG_LEVEL'] = 'WARNING'

from profrate.main import app
from profrate.core.database import Base, get_db
from profrate.core.security import credential_hasher
from profrate.models.user import User, UserRole
from profrate.modules.auth.csrf import csrf_token_store
from profrate.modules.auth.login_attempts import login_attempt_tracker
from profrate.modules.auth.orchestrator import registration_guard
from profrate.modules.auth.sessions import session_manager
from profrate.services.email_service import email_service

fake = Faker()

AUTH = '/api/auth'


class FakeClock:
    """Manually advanced clock for time-windowed behaviour"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh SQLite file database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client against the app, one database session per request"""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                if session.new or session.dirty or session.deleted:
                    await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def other_client(client) -> AsyncGenerator[AsyncClient, None]:
    """A second browser with its own cookie jar, same app and database"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac


@pytest_asyncio.fixture(autouse=True)
async def reset_auth_state():
    """Module-level stores outlive a test; start every test from empty"""
    yield
    await csrf_token_store.store.clear()
    await session_manager.store.clear()
    await login_attempt_tracker.store.clear()
    login_attempt_tracker._pending.clear()
    registration_guard._in_flight.clear()


@pytest.fixture
def sent_emails(monkeypatch) -> Dict[str, List[dict]]:
    """Capture outgoing account mail instead of talking to SMTP"""
    outbox: Dict[str, List[dict]] = {"verification": [], "reset": [], "username": []}

    def recorder(kind):
        async def record(**kwargs):
            outbox[kind].append(kwargs)
            return True
        return AsyncMock(side_effect=record)

    monkeypatch.setattr(email_service, "send_verification_email", recorder("verification"))
    monkeypatch.setattr(email_service, "send_password_reset_email", recorder("reset"))
    monkeypatch.setattr(email_service, "send_username_reminder_email", recorder("username"))
    return outbox


@pytest.fixture
def make_user(session_factory):
    """Factory inserting an account directly into the database"""
    async def _make_user(
        username: str = None,
        password: str = "CorrectHorse9!",
        email: str = None,
        role: UserRole = UserRole.STUDENT,
        email_verified: bool = True,
        hashed_password: str = None,
    ) -> User:
        user = User(
            username=(username or fake.user_name()[:20]).lower(),
            email=(email or fake.email()).lower(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            hashed_password=hashed_password or credential_hasher.hash_sync(password),
            role=role,
            email_verified=email_verified,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user


async def csrf_headers(client: AsyncClient) -> Dict[str, str]:
    """Fetch a fresh CSRF token for the client's session"""
    response = await client.get(f"{AUTH}/csrf-token")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["token"]}


@pytest.fixture
def csrf():
    return csrf_headers
