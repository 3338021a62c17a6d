"""
Pytest configuration for ShiftSwap backend tests.

Each test gets its own file-backed SQLite database so that several sessions
(and therefore several connections) can race against the same rows.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")

from datetime import UTC, date, datetime, time
from typing import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import get_db
from app.core.security import create_access_token
from app.main import app
from app.models import Base, Shift, User, UserRole
from app.services.directory_service import Actor
from app.services.swap_service import SwapService

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
SHIFT_DATE = date(2099, 1, 15)


def fixed_clock() -> datetime:
    return FIXED_NOW


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shiftswap.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def swap_service(db_session) -> SwapService:
    return SwapService(db_session, clock=fixed_clock)


# ---------------------------------------------------------------------------
# Test data
# ---------------------------------------------------------------------------

# Test data is written through its own short-lived session, so the returned
# objects are detached and stay loaded whatever the code under test rolls back.

@pytest.fixture
def make_user(session_factory) -> Callable[..., Awaitable[User]]:
    async def _make_user(name: str, role: UserRole = UserRole.staff) -> User:
        async with session_factory() as session:
            user = User(
                name=name,
                email=f"{name.lower().replace(' ', '.')}@example.com",
                role=role,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_shift(session_factory) -> Callable[..., Awaitable[Shift]]:
    async def _make_shift(
        owner: User,
        shift_date: date = SHIFT_DATE,
        start: time = time(9, 0),
        end: time = time(17, 0),
    ) -> Shift:
        async with session_factory() as session:
            shift = Shift(
                employee_id=owner.id, date=shift_date, start_time=start, end_time=end
            )
            session.add(shift)
            await session.commit()
            await session.refresh(shift)
        return shift

    return _make_shift


@pytest_asyncio.fixture
async def staff(make_user) -> dict[str, User]:
    """Three staff members (Alice, Bob, Carol) and one manager (Maria)."""
    return {
        "alice": await make_user("Alice"),
        "bob": await make_user("Bob"),
        "carol": await make_user("Carol"),
        "maria": await make_user("Maria", UserRole.manager),
    }


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get a fresh session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
