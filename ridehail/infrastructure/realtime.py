"""
Realtime change feed over Redis pub/sub.

Every committed write to ``rides``, ``driver_locations`` or ``messages`` is
published as a row-level ``ChangeEvent`` (INSERT / UPDATE / DELETE with the
new row image, or the old key for deletes).  Each process runs one
listener that fans events out to local ``Subscription`` objects, which
register typed handlers and an optional column-equality filter
(e.g. ``{"customer_id": "..."}``).

``Subscription.unsubscribe()`` is idempotent; once it returns no handler of
that subscription runs again.

Delivery is at-most-once and unordered across rows.  ``RowView`` gives
consumers primary-key de-duplication and last-write-wins by payload.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError
from sqlalchemy import inspect

from ridehail.domain.enums import LIFECYCLE_RANK, ChangeType, RideStatus

logger = logging.getLogger(__name__)

PRIMARY_KEYS: dict[str, str] = {
    "rides": "id",
    "messages": "id",
    "driver_locations": "driver_id",
}

Handler = Callable[["ChangeEvent"], Awaitable[None]]


class ChangeEvent(BaseModel):
    table: str
    type: ChangeType
    new: dict[str, Any] = {}
    old: dict[str, Any] = {}

    @property
    def key(self) -> Optional[str]:
        pk = PRIMARY_KEYS.get(self.table, "id")
        return self.new.get(pk) or self.old.get(pk)


def row_to_dict(model: Any) -> dict[str, Any]:
    """JSON-friendly column snapshot of an ORM instance."""
    data: dict[str, Any] = {}
    for attr in inspect(model).mapper.column_attrs:
        value = getattr(model, attr.key)
        if isinstance(value, enum.Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        data[attr.key] = value
    return data


# ── Subscriptions ─────────────────────────────────────────────────────


class Subscription:
    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        filter: Optional[dict[str, Any]] = None,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ):
        self._feed = feed
        self.table = table
        self.filter = dict(filter or {})
        self._handlers: dict[ChangeType, Optional[Handler]] = {
            ChangeType.INSERT: on_insert,
            ChangeType.UPDATE: on_update,
            ChangeType.DELETE: on_delete,
        }
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        if self._closed or event.table != self.table:
            return False
        row = event.old if event.type == ChangeType.DELETE else event.new
        return all(row.get(col) == value for col, value in self.filter.items())

    async def deliver(self, event: ChangeEvent) -> None:
        handler = self._handlers.get(event.type)
        # re-checked here: unsubscribe may have run while awaiting earlier
        if handler is None or not self.matches(event):
            return
        await handler(event)

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *args) -> None:
        self.unsubscribe()


# ── Feed ──────────────────────────────────────────────────────────────


class ChangeFeed:
    def __init__(self, client: aioredis.Redis, channel: str = "ridehail:changes"):
        self.redis = client
        self.channel = channel
        self._subscriptions: list[Subscription] = []
        self._task: Optional[asyncio.Task] = None
        self.reconnect_delay = 5

    def subscribe(
        self,
        table: str,
        *,
        filter: Optional[dict[str, Any]] = None,
        on_insert: Optional[Handler] = None,
        on_update: Optional[Handler] = None,
        on_delete: Optional[Handler] = None,
    ) -> Subscription:
        sub = Subscription(self, table, filter, on_insert, on_update, on_delete)
        self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(
        self,
        table: str,
        change: ChangeType,
        new: Optional[dict[str, Any]] = None,
        old: Optional[dict[str, Any]] = None,
    ) -> ChangeEvent:
        """Broadcast a committed change.  Failures are logged, never raised."""
        event = ChangeEvent(table=table, type=change, new=new or {}, old=old or {})
        try:
            await self.redis.publish(self.channel, event.model_dump_json())
        except aioredis.RedisError:
            logger.warning(
                "Could not publish %s %s/%s", change.value, table, event.key
            )
        return event

    async def dispatch(self, event: ChangeEvent) -> None:
        """Fan *event* out to every matching local subscription."""
        for sub in list(self._subscriptions):
            try:
                await sub.deliver(event)
            except Exception:
                logger.exception("Subscriber failed on %s event", event.table)

    # ── listener lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen())
        logger.info("Change feed listener started on %s", self.channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Change feed listener stopped")

    async def _listen(self) -> None:
        while True:
            try:
                pubsub = self.redis.pubsub()
                await pubsub.subscribe(self.channel)
                async for message in pubsub.listen():
                    if message["type"] != "message":
                        continue
                    try:
                        event = ChangeEvent.model_validate_json(message["data"])
                    except ValidationError:
                        logger.warning("Invalid change event: %r", message["data"])
                        continue
                    await self.dispatch(event)
            except aioredis.ConnectionError:
                logger.error(
                    "Redis disconnected, reconnecting in %ds", self.reconnect_delay
                )
                await asyncio.sleep(self.reconnect_delay)


# ── Consumer-side view ────────────────────────────────────────────────


_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    ``updated_at`` of a row image as an aware UTC datetime.

    Naive values are taken as UTC; a trailing ``Z`` is accepted.  Missing or
    unparsable values sort before every real timestamp.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _NEVER
    if not isinstance(value, datetime):
        return _NEVER
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RowView:
    """
    Local copy of the rows a consumer cares about.

    * Events are keyed by primary key; a key removed locally (DELETE or
      ``discard``) ignores later events for it.
    * Competing images of the same row are ordered by ``updated_at``, then
      by lifecycle rank of ``status``; arrival order does not matter.
    """

    def __init__(self, table: str):
        self.table = table
        self.rows: dict[str, dict[str, Any]] = {}
        self._removed: set[str] = set()

    def discard(self, key: str) -> None:
        self.rows.pop(key, None)
        self._removed.add(key)

    def apply(self, event: ChangeEvent) -> bool:
        """Merge *event*; returns True if the local view changed."""
        key = event.key
        if event.table != self.table or key is None or key in self._removed:
            return False

        if event.type == ChangeType.DELETE:
            self.discard(key)
            return True

        current = self.rows.get(key)
        if current is not None and not self._is_newer(event.new, current):
            return False
        self.rows[key] = dict(event.new)
        return True

    @staticmethod
    def _version(row: dict[str, Any]) -> tuple[datetime, int]:
        status = row.get("status")
        try:
            rank = LIFECYCLE_RANK[RideStatus(status)] if status else 0
        except ValueError:
            rank = 0
        return (parse_timestamp(row.get("updated_at")), rank)

    def _is_newer(self, candidate: dict[str, Any], current: dict[str, Any]) -> bool:
        if candidate == current:
            return False
        return self._version(candidate) >= self._version(current)
