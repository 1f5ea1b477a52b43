"""
Channel chat orchestration: Message persistence with Cache-Aside over DB + Redis.
- Load context: try Redis; on miss load from DB, warm Redis, return.
- Post: save the user message first; in "ai" channels ask the assistant for a reply.
  An AI failure leaves the user message stored and returns ai_error instead of a reply.
- Membership: every read/write checks the caller is a member (admins see all).
"""
import asyncio
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from opvera.config import get_settings
from opvera.models.channel import Channel, ChannelType
from opvera.models.user import User, UserRole
from opvera.repositories.channel_repository import ChannelRepository, message_to_dict
from opvera.services.ai_client import AIClient, AIOptions, AIUnavailableError
from opvera.services.ai_security import redact_text
from opvera.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

ASSISTANT_SYSTEM_PROMPT = """You are Opvera AI, the learning assistant of the Opvera platform.
Students, mentors and companies use Opvera for projects, assignments, quizzes and a points leaderboard.

Your role:
- Explain concepts step by step, with short examples.
- Help students plan projects and prepare for quizzes without handing over graded answers.
- Be educational, concise, and supportive.

Rules:
- Do not provide harmful or unsafe advice.
- Do not invent personal data; redacted values appear as ***REDACTED***.
- Answer in the same language as the user when possible; otherwise use English."""

CHAT_OPTIONS = AIOptions(temperature=0.7, top_k=40, top_p=0.95, max_output_tokens=2048)


class ChannelNotFound(Exception):
    pass


class ChatAccessDenied(Exception):
    pass


class ChatService:
    """Channel history: DB as source of truth, Redis as cache (Cache-Aside)."""

    def __init__(
        self,
        redis_cache: RedisChatCache | None,
        repository: ChannelRepository | None = None,
        ai_client: AIClient | None = None,
    ):
        self._cache = redis_cache
        self._repo = repository or ChannelRepository()
        self._ai = ai_client
        self._limit = get_settings().chat_history_max_messages

    def require_member(self, db: Session, user: User, channel_id: str) -> Channel:
        channel = self._repo.get_channel(db, channel_id)
        if channel is None:
            raise ChannelNotFound(channel_id)
        if user.role != UserRole.ADMIN.value and not channel.is_member(user.id):
            raise ChatAccessDenied(channel_id)
        return channel

    async def get_history(self, db: Session, channel_id: str) -> list[dict]:
        """Last N messages oldest-first (for Gemini context). Redis first, DB on miss."""
        if self._cache:
            messages = await self._cache.get_last_messages(channel_id)
            if messages is not None:
                return messages
        loop = asyncio.get_running_loop()
        messages = await loop.run_in_executor(
            None,
            lambda: self._repo.get_last_messages(db, channel_id, self._limit),
        )
        if self._cache and messages:
            await self._cache.warm(channel_id, messages)
        return messages

    async def list_messages(
        self, db: Session, user: User, channel_id: str, limit: int = 100, before: datetime | None = None,
    ) -> list[dict]:
        self.require_member(db, user, channel_id)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._repo.get_messages_ordered(db, channel_id, limit, before),
        )

    def _system_prompt(self, channel: Channel) -> str:
        description = (channel.metadata_ or {}).get("description")
        if description:
            return f"{ASSISTANT_SYSTEM_PROMPT}\n\nChannel context: {description}"
        return ASSISTANT_SYSTEM_PROMPT

    async def post_message(self, db: Session, user: User, channel_id: str, content: str) -> dict:
        """
        Save the user's message; in AI channels also generate and save the assistant reply.
        Returns {"message", "reply", "ai_error"}.
        """
        channel = self.require_member(db, user, channel_id)
        loop = asyncio.get_running_loop()

        history = []
        wants_reply = channel.type == ChannelType.AI.value and self._ai is not None
        if wants_reply:
            history = await self.get_history(db, channel_id)

        msg = await loop.run_in_executor(
            None,
            lambda: self._repo.save_message(db, channel_id, "user", content, sender_id=user.id),
        )
        if self._cache:
            await self._cache.append_message(channel_id, {"role": "user", "content": content})
        result = {"message": message_to_dict(msg), "reply": None, "ai_error": None}
        if not wants_reply:
            return result

        prompt = [
            {"role": m["role"], "content": redact_text(m["content"])}
            for m in history + [{"role": "user", "content": content}]
        ]
        options = AIOptions(
            temperature=CHAT_OPTIONS.temperature,
            top_k=CHAT_OPTIONS.top_k,
            top_p=CHAT_OPTIONS.top_p,
            max_output_tokens=CHAT_OPTIONS.max_output_tokens,
            system_instruction=self._system_prompt(channel),
        )
        try:
            response = await loop.run_in_executor(None, lambda: self._ai.call(prompt, options))
        except AIUnavailableError as e:
            logger.warning("AI reply failed in channel %s (%s); user message kept", channel_id, e.kind.value)
            result["ai_error"] = e.kind.value
            return result

        reply = await loop.run_in_executor(
            None,
            lambda: self._repo.save_message(
                db, channel_id, "assistant", response.text,
                metadata={"model": response.model, "attempts": response.attempts},
            ),
        )
        if self._cache:
            await self._cache.append_message(channel_id, {"role": "assistant", "content": response.text})
        result["reply"] = message_to_dict(reply)
        return result
