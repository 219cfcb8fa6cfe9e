from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DATABASE_URL: str

    # AI Configuration
    GOOGLE_GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash-lite"
    GEMINI_DEFAULT_MODEL: str = "gemini-2.0-flash-lite"
    AI_TIMEOUT_SECONDS: float = 20.0

    # Telegram Configuration
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    CHAT_SEND_TIMEOUT_SECONDS: float = 30.0
    SKIP_CHAT_DELIVERY: bool = False  # Log replies instead of sending them (dev)

    # Conversation flows
    TIMEZONE: str = "Asia/Phnom_Penh"
    FLOW_TTL_SECONDS: int = 300
    CUSTOMERS_COOLDOWN_SECONDS: int = 120
    REPORT_COOLDOWN_SECONDS: int = 120
    REPORT_MAX_DAYS: int = 30

    @property
    def ai_enabled(self) -> bool:
        return bool(self.GOOGLE_GEMINI_API_KEY)

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    """
    Loads settings once per process.

    Raises pydantic ValidationError when DATABASE_URL or TELEGRAM_BOT_TOKEN
    is missing; the app lifespan lets it abort startup.
    """
    return Settings()
