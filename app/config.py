from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./sms_console.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Telnyx Messaging API
    TELNYX_API_KEY: str = ""
    TELNYX_API_URL: str = "https://api.telnyx.com/v2/messages"

    # Business lines (ordered: HU Main, HU Sec, US Line)
    HU_MAIN_NUMBER: str = "+36204515510"
    HU_MAIN_PROFILE_ID: Optional[str] = None
    HU_SEC_NUMBER: str = "+36304733451"
    HU_SEC_PROFILE_ID: Optional[str] = None
    US_LINE_NUMBER: str = "+16692856302"
    US_LINE_PROFILE_ID: Optional[str] = None

    # Operator session
    SESSION_SECRET: str = "sms-console-secret-key-change-in-production"
    SESSION_COOKIE_SECURE: bool = False
    SEND_PIN: str = "1234"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
