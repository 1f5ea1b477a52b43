from pydantic import BaseModel, Field
from opvera.models.channel import ChannelType


class ChannelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: ChannelType = ChannelType.GROUP
    members: list[str] = []
    description: str | None = None


class ChannelResponse(BaseModel):
    id: str
    name: str
    type: str
    members: list[str]
    admins: list[str]
    metadata: dict = {}


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=8000)


class MessageOut(BaseModel):
    id: str
    channel_id: str
    sender_id: str | None
    role: str  # "user" | "assistant"
    content: str
    metadata: dict = {}
    created_at: str | None = None


class PostMessageResponse(BaseModel):
    message: MessageOut
    reply: MessageOut | None = None
    ai_error: str | None = None  # failure kind when the assistant could not answer


class MessageHistoryResponse(BaseModel):
    messages: list[MessageOut]
