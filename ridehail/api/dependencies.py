"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.config import settings
from ridehail.domain.entities import Actor
from ridehail.domain.enums import ActorRole
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.geocoding import GeocodingClient
from ridehail.infrastructure.realtime import ChangeFeed
from ridehail.infrastructure.redis_client import get_change_feed
from ridehail.infrastructure.repositories import DriverRepository


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_feed() -> ChangeFeed:
    return await get_change_feed()


def get_geocoder() -> GeocodingClient:
    return GeocodingClient(
        settings.geocoding_url,
        language=settings.geocoding_language,
        timeout=settings.geocoding_timeout_seconds,
    )


async def resolve_actor(
    db: AsyncSession, actor_id: Optional[str], role: Optional[str]
) -> Actor:
    """Turn the caller's identity headers into an ``Actor`` context."""
    if not actor_id or not role:
        raise HTTPException(status_code=401, detail="Missing actor headers")
    try:
        actor_role = ActorRole(role)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {role}")

    if actor_role == ActorRole.DRIVER:
        driver = await DriverRepository(db).get_by_user_id(actor_id)
        if driver is None:
            raise HTTPException(status_code=403, detail="No driver record")
        return Actor(user_id=actor_id, role=actor_role, driver_id=driver.id)
    return Actor(user_id=actor_id, role=actor_role)


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    return await resolve_actor(db, x_actor_id, x_actor_role)
