"""
Chat channels:
- GET/POST /api/chat/channels: list channels the user belongs to; mentors/admins create channels
- GET /api/chat/channels/{id}/messages: ordered history (members only)
- POST /api/chat/channels/{id}/messages: post; "ai" channels also get an assistant reply
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from opvera.auth import get_current_user, get_current_user_reviewer
from opvera.core.redis import build_redis_chat_cache, get_redis_client
from opvera.database import get_db
from opvera.models.channel import Channel, ChannelType
from opvera.models.user import User
from opvera.repositories.channel_repository import ChannelRepository
from opvera.schemas.chat import (
    ChannelCreate,
    ChannelResponse,
    MessageCreate,
    MessageHistoryResponse,
    MessageOut,
    PostMessageResponse,
)
from opvera.services.ai_client import AIClient, get_ai_client
from opvera.services.chat_service import ChannelNotFound, ChatAccessDenied, ChatService

router = APIRouter(prefix="/api/chat", tags=["chat"])


# ---------- Dependencies: Redis (optional) + ChatService (Cache-Aside) ----------


async def _get_redis_chat_cache_dep():
    """Async dependency: Redis history cache or None if Redis disabled/down."""
    client = await get_redis_client()
    return build_redis_chat_cache(client) if client else None


def _get_chat_service_dep(
    redis_cache=Depends(_get_redis_chat_cache_dep),
    ai: AIClient = Depends(get_ai_client),
) -> ChatService:
    return ChatService(redis_cache=redis_cache, repository=ChannelRepository(), ai_client=ai)


def _channel_out(channel: Channel) -> ChannelResponse:
    return ChannelResponse(
        id=channel.id,
        name=channel.name,
        type=channel.type,
        members=channel.members or [],
        admins=channel.admins or [],
        metadata=channel.metadata_ or {},
    )


@router.get("/channels", response_model=list[ChannelResponse])
def list_channels(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [_channel_out(c) for c in ChannelRepository.list_channels_for_user(db, user.id)]


@router.post("/channels", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
def create_channel(
    body: ChannelCreate,
    creator: User = Depends(get_current_user_reviewer),
    db: Session = Depends(get_db),
):
    """Mentors/admins create channels; the creator is always a member and channel admin."""
    members = list(dict.fromkeys([creator.id, *body.members]))
    metadata = {"description": body.description} if body.description else {}
    if body.type == ChannelType.AI:
        metadata["ai_enabled"] = True
    channel = ChannelRepository.create_channel(db, body.name, body.type, members, [creator.id], metadata)
    return _channel_out(channel)


@router.get("/channels/{channel_id}/messages", response_model=MessageHistoryResponse)
async def list_messages(
    channel_id: str,
    limit: int = Query(100, ge=1, le=500),
    before: datetime | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    try:
        messages = await chat_service.list_messages(db, user, channel_id, limit, before)
    except ChannelNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
    except ChatAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this channel")
    return MessageHistoryResponse(messages=[MessageOut(**m) for m in messages])


@router.post("/channels/{channel_id}/messages", response_model=PostMessageResponse)
async def post_message(
    channel_id: str,
    body: MessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(_get_chat_service_dep),
):
    """Post a message. In AI channels the reply is included; if the AI is down `ai_error` is set instead."""
    try:
        result = await chat_service.post_message(db, user, channel_id, body.content)
    except ChannelNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
    except ChatAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this channel")
    return PostMessageResponse(
        message=MessageOut(**result["message"]),
        reply=MessageOut(**result["reply"]) if result["reply"] else None,
        ai_error=result["ai_error"],
    )
