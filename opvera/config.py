from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./opvera.db"

    # JWT
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:5173"

    # Gemini: API key (AI Studio) or Vertex AI project; api key wins when both set
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-2.0-flash"

    # AI call wrapper
    ai_min_interval_seconds: float = 1.0  # spacing between outbound calls, process-wide
    ai_timeout_seconds: float = 30.0  # per attempt
    ai_max_attempts: int = 3
    ai_backoff_base_seconds: float = 1.0  # 1s, 2s, 4s ...
    ai_safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"

    # Redis (optional cache for channel history; empty = no Redis, DB only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    # Chat cache TTL in seconds (1 day)
    chat_cache_ttl_seconds: int = 86400
    chat_history_max_messages: int = 20

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
