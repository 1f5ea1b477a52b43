"""AI status endpoints: Redis cache health and the AI wrapper's settings."""
from fastapi import APIRouter, Depends

from opvera.auth import get_current_user_admin
from opvera.core.redis import redis_status
from opvera.models.user import User
from opvera.services.ai_client import AIClient, get_ai_client

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.get("/health")
async def ai_health():
    """Health check: Redis status (optional). Gemini is not called here."""
    return await redis_status()


@router.get("/status")
def ai_status(
    _admin: User = Depends(get_current_user_admin),
    ai: AIClient = Depends(get_ai_client),
):
    """Admin view of the call wrapper: model, limits, last outbound call (monotonic seconds)."""
    return {
        "model": ai.model,
        "min_interval_seconds": ai.rate_limiter.min_interval,
        "timeout_seconds": ai.timeout,
        "max_attempts": ai.max_attempts,
        "backoff_base_seconds": ai.backoff_base,
        "last_call": ai.rate_limiter.last_call,
    }
