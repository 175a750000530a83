"""Per-ride chat between the customer and the assigned driver."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.domain.entities import Actor, utcnow
from ridehail.domain.enums import ChangeType
from ridehail.domain.exceptions import RideNotFoundError, RideValidationError
from ridehail.infrastructure.models import MessageModel
from ridehail.infrastructure.realtime import ChangeFeed, row_to_dict
from ridehail.infrastructure.repositories import (
    MessageRepository,
    RideRepository,
    ride_to_entity,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


class ChatService:
    def __init__(
        self,
        session: AsyncSession,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.feed = feed
        self.clock = clock
        self.rides = RideRepository(session)
        self.messages = MessageRepository(session)

    async def _check_party(self, actor: Actor, ride_id: str) -> None:
        ride = await self.rides.get_by_id(ride_id)
        if ride is None or not ride_to_entity(ride).is_party(actor):
            raise RideNotFoundError(f"Ride {ride_id} not found")

    async def history(self, actor: Actor, ride_id: str) -> list[MessageModel]:
        await self._check_party(actor, ride_id)
        return await self.messages.list_for_ride(ride_id)

    async def send(self, actor: Actor, ride_id: str, content: str) -> MessageModel:
        await self._check_party(actor, ride_id)
        content = (content or "").strip()
        if not content:
            raise RideValidationError("Message must not be empty")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise RideValidationError("Message too long")

        message = await self.messages.create(ride_id, actor.user_id, content)
        data = row_to_dict(message)
        await self.session.commit()
        if self.feed is not None:
            await self.feed.publish("messages", ChangeType.INSERT, new=data)
        return message

    async def mark_read(self, actor: Actor, ride_id: str) -> int:
        """Mark everything the other party sent as read; returns the count."""
        await self._check_party(actor, ride_id)
        updated = await self.messages.mark_read(ride_id, actor.user_id, self.clock())
        rows = [row_to_dict(m) for m in updated]
        await self.session.commit()
        if self.feed is not None:
            for row in rows:
                await self.feed.publish("messages", ChangeType.UPDATE, new=row)
        return len(rows)
