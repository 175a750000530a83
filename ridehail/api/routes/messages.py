"""
Ride chat endpoints
===================

GET  /api/v1/rides/{ride_id}/messages      -- conversation, oldest first
POST /api/v1/rides/{ride_id}/messages      -- send a message
POST /api/v1/rides/{ride_id}/messages/read -- mark the other side's messages read
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ridehail.api.dependencies import get_actor, get_db, get_feed
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import MarkReadResponse, MessageCreateRequest, MessageResponse
from ridehail.domain.entities import Actor
from ridehail.infrastructure.realtime import ChangeFeed
from ridehail.services.chat import ChatService

router = APIRouter(prefix="/rides/{ride_id}/messages", tags=["messages"])


@router.get("", response_model=list[MessageResponse], summary="Chat history")
@limiter.limit(DEFAULT_LIMIT)
async def list_messages(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    return await ChatService(db).history(actor, ride_id)


@router.post("", status_code=201, response_model=MessageResponse, summary="Send a message")
@limiter.limit(DEFAULT_LIMIT)
async def send_message(
    request: Request,
    ride_id: str,
    body: MessageCreateRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    return await ChatService(db, feed=feed).send(actor, ride_id, body.content)


@router.post("/read", response_model=MarkReadResponse, summary="Mark messages read")
@limiter.limit(DEFAULT_LIMIT)
async def mark_read(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
):
    updated = await ChatService(db, feed=feed).mark_read(actor, ride_id)
    return MarkReadResponse(updated=updated)
