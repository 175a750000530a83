"""
Pending-Ride Expiry Worker
==========================

Runs every ``EXPIRY_INTERVAL_SECONDS`` (default 60 s).

Rides that stay ``pending`` longer than ``PENDING_RIDE_TTL_MINUTES``
(scheduled rides: that long past their scheduled time) are cancelled with
no fee.  A TTL of 0 disables the worker.

Concurrency safety
------------------
* **Redis distributed lock** lets only one API process sweep per cycle.
* Each cancellation is a conditional UPDATE on ``status = 'pending'``, so
  a driver claiming the ride at the same moment simply wins.
"""

from __future__ import annotations

import logging
from typing import Optional

from ridehail.config import settings
from ridehail.infrastructure.database import async_session_factory
from ridehail.infrastructure.locks import DistributedLock
from ridehail.infrastructure.redis_client import get_change_feed, get_redis
from ridehail.services.rides import RideService
from ridehail.workers.periodic import PeriodicTask

logger = logging.getLogger(__name__)

_worker: Optional[PeriodicTask] = None


# ── Public API ────────────────────────────────────────────────────────


async def start_expiry_loop() -> None:
    global _worker
    if settings.pending_ride_ttl_minutes <= 0:
        logger.info("Pending-ride expiry disabled")
        return
    _worker = PeriodicTask(
        "Expiry worker", run_expiry_cycle, settings.expiry_interval_seconds
    )
    await _worker.start()


async def stop_expiry_loop() -> None:
    global _worker
    if _worker is not None:
        await _worker.stop()
        _worker = None


# ── Internals ─────────────────────────────────────────────────────────


async def run_expiry_cycle() -> int:
    """Execute one sweep.  Returns the number of rides expired."""
    redis = await get_redis()
    lock = DistributedLock(redis, "pending_expiry", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return 0

    try:
        async with async_session_factory() as session:
            service = RideService(session, feed=await get_change_feed())
            return await service.expire_stale(settings.pending_ride_ttl_minutes)
    finally:
        await lock.release()
