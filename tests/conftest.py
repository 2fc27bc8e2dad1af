"""Pytest configuration and fixtures."""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.persistence.database import Base
from app.persistence.models import *  # noqa: F401, F403
from app.persistence.models import Appointment, Client, Organization, User


@pytest.fixture
async def engine(tmp_path):
    """Create a file-backed SQLite engine with the full schema.

    A file (rather than :memory:) lets every session in a test see the
    same database, so merge, undo and the assertions after them can each
    run on a fresh session the way requests do.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'client_merge_test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_rows(session_factory):
    """Insert rows on a short-lived session and return them."""

    async def _add(*rows):
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else list(rows)

    return _add


@pytest.fixture
async def organization(add_rows):
    """Create the organization most tests operate in."""
    return await add_rows(Organization(name="Shear Bliss", slug="shear-bliss"))


@pytest.fixture
async def other_organization(add_rows):
    """Create a second organization for isolation tests."""
    return await add_rows(Organization(name="Curl Up & Dye", slug="curl-up-and-dye"))


@pytest.fixture
async def user(add_rows, organization):
    """Create the front-desk user performing merges."""
    return await add_rows(
        User(organization_id=organization.id, email="desk@shearbliss.test", full_name="Front Desk", role="manager")
    )


@pytest.fixture
def make_client(add_rows, organization):
    """Create a client in the default organization."""

    async def _make(**fields) -> Client:
        fields.setdefault("organization_id", organization.id)
        return await add_rows(Client(**fields))

    return _make


@pytest.fixture
def add_appointments(add_rows):
    """Create ``count`` appointments for a client."""

    async def _add(client: Client, count: int) -> list[Appointment]:
        rows = [
            Appointment(
                organization_id=client.organization_id,
                client_id=client.id,
                service_name="Cut & Colour",
                starts_at=datetime(2026, 3, 1 + i, 10, 0),
            )
            for i in range(count)
        ]
        if not rows:
            return []
        result = await add_rows(*rows)
        return result if isinstance(result, list) else [result]

    return _add
