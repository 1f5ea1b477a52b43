"""
Channel + Message persistence. DB is the source of truth for chat history.
All operations are sync (used from sync endpoints or run_in_executor from async).
Membership is checked by the caller (ChatService) before any read or write here.
"""
from datetime import datetime

from sqlalchemy import desc
from sqlalchemy.orm import Session

from opvera.models.channel import Channel, ChannelType, Message


def message_to_dict(msg: Message) -> dict:
    return {
        "id": msg.id,
        "channel_id": msg.channel_id,
        "sender_id": msg.sender_id,
        "role": msg.role,
        "content": msg.content,
        "metadata": msg.metadata_ or {},
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
    }


def get_channel(db: Session, channel_id: str) -> Channel | None:
    return db.query(Channel).filter(Channel.id == channel_id).first()


def list_channels_for_user(db: Session, user_id: str) -> list[Channel]:
    """Global channels plus every channel listing the user as member (JSON list, filtered in Python)."""
    rows = db.query(Channel).order_by(Channel.created_at).all()
    return [c for c in rows if c.is_member(user_id)]


def create_channel(
    db: Session,
    name: str,
    channel_type: ChannelType,
    members: list[str],
    admins: list[str],
    metadata: dict | None = None,
) -> Channel:
    channel = Channel(
        name=name,
        type=channel_type.value,
        members=members,
        admins=admins,
        metadata_=metadata or {},
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return channel


def save_message(
    db: Session,
    channel_id: str,
    role: str,
    content: str,
    *,
    sender_id: str | None = None,
    metadata: dict | None = None,
) -> Message:
    msg = Message(
        channel_id=channel_id,
        sender_id=sender_id,
        role=role,
        content=content,
        metadata_=metadata or {},
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return msg


def get_last_messages(db: Session, channel_id: str, limit: int = 20) -> list[dict]:
    """
    Last `limit` messages of a channel, oldest-first (for Gemini context).
    Returns list of {"role": "user"|"assistant", "content": "..."}.
    """
    rows = (
        db.query(Message)
        .filter(Message.channel_id == channel_id)
        .order_by(desc(Message.created_at))
        .limit(limit)
        .all()
    )
    rows = list(reversed(rows))
    return [{"role": r.role, "content": r.content} for r in rows]


def get_messages_ordered(db: Session, channel_id: str, limit: int = 100, before: datetime | None = None) -> list[dict]:
    """History for the GET endpoint, ordered by created_at asc. `before` pages backwards by created_at."""
    q = db.query(Message).filter(Message.channel_id == channel_id)
    if before:
        q = q.filter(Message.created_at < before)
    rows = reversed(q.order_by(desc(Message.created_at)).limit(limit).all())
    return [message_to_dict(r) for r in rows]


class ChannelRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def get_channel(db: Session, channel_id: str) -> Channel | None:
        return get_channel(db, channel_id)

    @staticmethod
    def list_channels_for_user(db: Session, user_id: str) -> list[Channel]:
        return list_channels_for_user(db, user_id)

    @staticmethod
    def create_channel(db: Session, name: str, channel_type: ChannelType, members: list[str],
                       admins: list[str], metadata: dict | None = None) -> Channel:
        return create_channel(db, name, channel_type, members, admins, metadata)

    @staticmethod
    def save_message(db: Session, channel_id: str, role: str, content: str, *,
                     sender_id: str | None = None, metadata: dict | None = None) -> Message:
        return save_message(db, channel_id, role, content, sender_id=sender_id, metadata=metadata)

    @staticmethod
    def get_last_messages(db: Session, channel_id: str, limit: int = 20) -> list[dict]:
        return get_last_messages(db, channel_id, limit)

    @staticmethod
    def get_messages_ordered(db: Session, channel_id: str, limit: int = 100, before: datetime | None = None) -> list[dict]:
        return get_messages_ordered(db, channel_id, limit, before)


DEFAULT_CHANNELS = (
    ("General Discussion", ChannelType.GLOBAL, {}),
    ("Announcements", ChannelType.GLOBAL, {}),
    ("Help & Support", ChannelType.GLOBAL, {}),
    ("AI Assistant", ChannelType.AI, {"ai_enabled": True, "description": "Chat with Opvera AI for learning support"}),
)


def ensure_default_channels(db: Session) -> int:
    """Create the default channels on an empty install. Returns how many were created."""
    existing = {name for (name,) in db.query(Channel.name).all()}
    created = 0
    for name, channel_type, metadata in DEFAULT_CHANNELS:
        if name in existing:
            continue
        db.add(Channel(name=name, type=channel_type.value, members=[], admins=[], metadata_=metadata))
        created += 1
    if created:
        db.commit()
    return created
