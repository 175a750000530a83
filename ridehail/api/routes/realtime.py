"""
Live ride stream
================

WS /ws/rides/{ride_id}

Pushes the ride row, its chat messages and the assigned driver's position
as they change.  The first frame is a snapshot of the ride; every later
frame is ``{"table", "type", "row"}``.  When a driver claims the ride the
stream starts following that driver's location automatically.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, WebSocket, WebSocketDisconnect, status

from ridehail.api.dependencies import get_feed, resolve_actor
from ridehail.domain.enums import ChangeType
from ridehail.domain.exceptions import RideNotFoundError
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.realtime import (
    ChangeEvent,
    ChangeFeed,
    RowView,
    Subscription,
    row_to_dict,
)
from ridehail.services.rides import RideService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

Sender = Callable[[dict[str, Any]], Awaitable[None]]


class RideEventStream:
    """Subscriptions backing one client's view of a single ride."""

    def __init__(self, feed: ChangeFeed, ride: dict[str, Any], send: Sender):
        self.feed = feed
        self.ride_id = ride["id"]
        self.send = send
        self.view = RowView("rides")
        self.view.rows[self.ride_id] = dict(ride)
        self.driver_id: Optional[str] = None
        self._subs: list[Subscription] = []
        self._driver_sub: Optional[Subscription] = None

    def start(self) -> None:
        self._subs.append(
            self.feed.subscribe(
                "rides",
                filter={"id": self.ride_id},
                on_insert=self._on_ride,
                on_update=self._on_ride,
                on_delete=self._on_ride,
            )
        )
        self._subs.append(
            self.feed.subscribe(
                "messages",
                filter={"ride_id": self.ride_id},
                on_insert=self._forward,
                on_update=self._forward,
            )
        )
        self._follow(self.view.rows[self.ride_id].get("driver_id"))

    def close(self) -> None:
        for sub in self._subs:
            sub.unsubscribe()
        self._subs.clear()
        if self._driver_sub is not None:
            self._driver_sub.unsubscribe()
            self._driver_sub = None

    @property
    def ride(self) -> Optional[dict[str, Any]]:
        return self.view.rows.get(self.ride_id)

    def _follow(self, driver_id: Optional[str]) -> None:
        if driver_id == self.driver_id:
            return
        if self._driver_sub is not None:
            self._driver_sub.unsubscribe()
            self._driver_sub = None
        self.driver_id = driver_id
        if driver_id:
            self._driver_sub = self.feed.subscribe(
                "driver_locations",
                filter={"driver_id": driver_id},
                on_insert=self._forward,
                on_update=self._forward,
            )

    async def _on_ride(self, event: ChangeEvent) -> None:
        if not self.view.apply(event):
            return
        if event.type == ChangeType.DELETE:
            self._follow(None)
            await self.send({"table": "rides", "type": event.type.value, "row": event.old})
            return
        row = self.view.rows[self.ride_id]
        self._follow(row.get("driver_id"))
        await self.send({"table": "rides", "type": event.type.value, "row": row})

    async def _forward(self, event: ChangeEvent) -> None:
        await self.send({"table": event.table, "type": event.type.value, "row": event.new})


@router.websocket("/ws/rides/{ride_id}")
async def ride_stream(
    websocket: WebSocket,
    ride_id: str,
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    feed: ChangeFeed = Depends(get_feed),
):
    # the session only lives through the handshake; the stream itself runs off the feed
    async with async_session_factory() as session:
        try:
            actor = await resolve_actor(session, x_actor_id, x_actor_role)
            ride = await RideService(session).get(actor, ride_id)
        except (HTTPException, RideNotFoundError):
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        snapshot = row_to_dict(ride)

    await websocket.accept()
    stream = RideEventStream(feed, snapshot, websocket.send_json)
    stream.start()
    logger.info("Client %s subscribed to ride %s", actor.user_id, ride_id)
    try:
        await websocket.send_json({"table": "rides", "type": "SNAPSHOT", "row": stream.ride})
        while True:
            # inbound frames are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        stream.close()
        logger.info("Client %s left ride %s", actor.user_id, ride_id)
