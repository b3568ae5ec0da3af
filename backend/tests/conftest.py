"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh SQLite file database (or the PostgreSQL database in
TEST_DATABASE_URL) with the tables created and dropped around it. Both the
request session and the seat ledger are pointed at that database.
"""

import os
import tempfile

# Settings are read once at import time
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAILS", '["admin@example.com"]')
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="event-portal-media-"))
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.pop("NOTIFIER_URL", None)

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from event_portal.main import app
from event_portal.api.deps import get_seat_ledger
from event_portal.core.security import create_access_token, hash_password
from event_portal.db.base import Base
from event_portal.db.session import get_db
from event_portal.models import Event, Profile, Registration, RegistrationStatus
from event_portal.services.seat_ledger import SeatLedger
from event_portal.services.sql_seat_store import sql_unit_of_work_factory

PASSWORD = "testpassword123"


@pytest_asyncio.fixture
async def engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path}/test.db"
    test_engine = create_async_engine(url, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and inspecting rows outside the app."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger(session_factory) -> SeatLedger:
    return SeatLedger(sql_unit_of_work_factory(session_factory))


@pytest_asyncio.fixture
async def client(session_factory, ledger) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB and ledger dependencies bound to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_seat_ledger] = lambda: ledger

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_profile(db: AsyncSession, email: str, role: str = "user") -> Profile:
    profile = Profile(
        email=email,
        full_name=email.split("@")[0].title(),
        hashed_password=hash_password(PASSWORD),
        role=role,
    )
    db.add(profile)
    await db.commit()
    return profile


def _headers(profile: Profile) -> dict:
    token = create_access_token(data={"sub": profile.id, "role": profile.role})
    return {"Authorization": f"Bearer {token}"}


async def _make_event(db: AsyncSession, creator: Profile, *, days: float = 30, total: int = 100, **fields) -> Event:
    event = Event(
        title=fields.pop("title", "Test Concert"),
        description=fields.pop("description", "A test event"),
        location=fields.pop("location", "Test Venue"),
        event_date=datetime.now(timezone.utc) + timedelta(days=days),
        total_seats=total,
        available_seats=total,
        creator_id=creator.id,
        **fields,
    )
    db.add(event)
    await db.commit()
    return event


async def _make_registration(db: AsyncSession, event: Event, profile: Profile, **fields) -> Registration:
    """Insert a confirmed registration and take its seat, as the ledger would."""
    registration = Registration(event_id=event.id, user_id=profile.id, **fields)
    db.add(registration)
    if registration.status in (None, RegistrationStatus.CONFIRMED.value):
        event.available_seats -= 1
    await db.commit()
    return registration


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "test@example.com")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "other@example.com")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> Profile:
    return await _make_profile(db_session, "admin@example.com", role="admin")


@pytest_asyncio.fixture
async def auth_headers(test_user: Profile) -> dict:
    """Authorization headers with Bearer token."""
    return _headers(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: Profile) -> dict:
    return _headers(other_user)


@pytest_asyncio.fixture
async def admin_headers(admin_user: Profile) -> dict:
    return _headers(admin_user)


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession, admin_user: Profile) -> Event:
    """Upcoming event with 100 seats."""
    return await _make_event(db_session, admin_user)


@pytest_asyncio.fixture
async def sold_out_event(db_session: AsyncSession, admin_user: Profile, other_user: Profile) -> Event:
    """One seat, held by `other_user`."""
    event = await _make_event(db_session, admin_user, title="Sold Out Show", total=1)
    await _make_registration(db_session, event, other_user)
    return event


@pytest_asyncio.fixture
async def past_event(db_session: AsyncSession, admin_user: Profile) -> Event:
    return await _make_event(db_session, admin_user, title="Last Week's Meetup", days=-7, total=20)


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession, admin_user: Profile):
    async def factory(**kwargs) -> Event:
        return await _make_event(db_session, admin_user, **kwargs)

    return factory


@pytest_asyncio.fixture
async def make_registration(db_session: AsyncSession):
    async def factory(event: Event, profile: Profile, **kwargs) -> Registration:
        return await _make_registration(db_session, event, profile, **kwargs)

    return factory


@pytest_asyncio.fixture
async def make_profile(db_session: AsyncSession):
    async def factory(email: str, role: str = "user") -> Profile:
        return await _make_profile(db_session, email, role)

    return factory
