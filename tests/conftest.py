"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are plain columns
throughout, so the real schema is created as-is.  Redis is replaced by an
``AsyncMock`` wherever a change feed is needed.
"""

import uuid
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ridehail.domain.entities import Actor, Location, utcnow
from ridehail.domain.enums import ActorRole
from ridehail.infrastructure.database import Base
from ridehail.infrastructure.models import DriverLocationModel, DriverModel
from ridehail.infrastructure.realtime import ChangeFeed


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

# Berlin Mitte; DROPOFF is exactly 10 km due north along the meridian
KM_PER_DEGREE_LAT = 6371.0 * 3.141592653589793 / 180.0
PICKUP = Location(52.52, 13.405)
DROPOFF = Location(52.52 + 10 / KM_PER_DEGREE_LAT, 13.405)


def north_of(origin: Location, km: float) -> Location:
    return Location(origin.latitude + km / KM_PER_DEGREE_LAT, origin.longitude)


def customer(user_id: Optional[str] = None) -> Actor:
    return Actor(user_id=user_id or str(uuid.uuid4()), role=ActorRole.CUSTOMER)


def driver_actor(driver: DriverModel) -> Actor:
    return Actor(user_id=driver.user_id, role=ActorRole.DRIVER, driver_id=driver.id)


async def add_driver(
    session: AsyncSession,
    *,
    online: bool = True,
    at: Optional[Location] = None,
) -> DriverModel:
    driver = DriverModel(
        user_id=str(uuid.uuid4()),
        vehicle_model="VW Passat",
        vehicle_plate="B-RH 100",
        is_online=online,
    )
    session.add(driver)
    await session.flush()
    if at is not None:
        session.add(
            DriverLocationModel(
                driver_id=driver.id,
                latitude=at.latitude,
                longitude=at.longitude,
                updated_at=utcnow(),
            )
        )
    await session.commit()
    return driver


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def feed() -> ChangeFeed:
    """Change feed whose Redis client is a mock; use ``dispatch`` to deliver."""
    return ChangeFeed(AsyncMock(), channel="test:changes")
