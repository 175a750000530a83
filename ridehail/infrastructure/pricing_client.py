"""
HTTP client for the remote pricing service.

Contract: ``POST {distance_km, duration_minutes, pickup_address,
dropoff_address}`` -> ``{price, breakdown: {base, distance, time,
fuel_surcharge}}``.

Any transport error, timeout, non-2xx status or malformed body falls back
to the local formula of the ``PricingEngine``; booking is never blocked by
this dependency.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from ridehail.domain.pricing import PriceBreakdown, PriceQuote, PricingEngine

logger = logging.getLogger(__name__)


class RemoteBreakdown(BaseModel):
    base: float = 0.0
    distance: float = 0.0
    time: float = 0.0
    fuel_surcharge: float = 0.0


class RemoteQuote(BaseModel):
    price: float = Field(..., ge=0)
    breakdown: RemoteBreakdown = RemoteBreakdown()


class PricingClient:
    def __init__(
        self,
        engine: PricingEngine,
        url: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.engine = engine
        self.url = url
        self.timeout = timeout

    async def quote(
        self,
        distance_km: float,
        duration_minutes: int,
        pickup_address: str = "",
        dropoff_address: str = "",
    ) -> PriceQuote:
        if not self.url:
            return self.engine.local_quote(distance_km, duration_minutes)

        payload = {
            "distance_km": distance_km,
            "duration_minutes": duration_minutes,
            "pickup_address": pickup_address,
            "dropoff_address": dropoff_address,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                remote = RemoteQuote.model_validate(response.json())
        except httpx.TimeoutException:
            logger.warning("Pricing service timed out after %ss; using local formula", self.timeout)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Pricing service returned %d; using local formula",
                e.response.status_code,
            )
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning("Pricing service unusable (%s); using local formula", e)
        else:
            return PriceQuote(
                price=round(remote.price, 2),
                breakdown=PriceBreakdown(**remote.breakdown.model_dump()),
                source="remote",
            )
        return self.engine.local_quote(distance_km, duration_minutes)
