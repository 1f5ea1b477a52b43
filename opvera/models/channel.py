"""Chat channels and their messages. Channels of type "ai" get assistant replies."""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from opvera.database import Base


class ChannelType(str, enum.Enum):
    GROUP = "group"
    PRIVATE = "private"
    GLOBAL = "global"
    AI = "ai"


class Channel(Base):
    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    type = Column(String(16), nullable=False, index=True)
    members = Column(JSON, nullable=False, default=list)  # user ids
    admins = Column(JSON, nullable=False, default=list)  # user ids
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages = relationship(
        "Message",
        back_populates="channel",
        order_by="Message.created_at",
        lazy="select",
        passive_deletes=True,
    )

    @property
    def is_open(self) -> bool:
        # Global channels, and AI channels without a member list, are open to everyone
        if self.type == ChannelType.GLOBAL.value:
            return True
        return self.type == ChannelType.AI.value and not self.members

    def is_member(self, user_id: str) -> bool:
        return self.is_open or user_id in (self.members or [])


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    role = Column(String(16), nullable=False, default="user")  # "user" | "assistant"
    content = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    channel = relationship("Channel", back_populates="messages")
