from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://localhost:5432/hairstyle"
    DATABASE_ASYNC_URL: Optional[str] = None

    # Auth (Clerk)
    CLERK_SECRET_KEY: Optional[str] = None
    FRONTEND_URL: Optional[str] = None

    # Credits
    GENERATION_COST: int = 1
    SIGNUP_BONUS_CREDITS: int = 3
    ANONYMOUS_FREE_TRIES: int = 2  # Enforced by the client only

    # Request limits
    MAX_PROMPT_LENGTH: int = 500
    MAX_IMAGE_SIZE_MB: int = 10

    # WaveSpeed (primary provider)
    WAVESPEED_API_KEY: Optional[str] = None
    WAVESPEED_API_BASE: str = "https://api.wavespeed.ai/api/v3"
    WAVESPEED_EDIT_MODEL: str = "google/nano-banana-pro/edit"
    PROVIDER_SUBMIT_TIMEOUT_SECONDS: float = 120.0
    PROVIDER_POLL_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_POLL_INTERVAL_SECONDS: float = 2.0
    PROVIDER_MAX_POLL_ATTEMPTS: int = 60  # ~120s ceiling

    # Gemini (fallback provider)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_IMAGE_MODEL: str = "gemini-2.0-flash-exp"
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # Input image staging (S3)
    S3_BUCKET_NAME: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None
    S3_STAGING_PREFIX: str = "hairstyle-input"

    # Abandoned generations older than this get refunded by the sweep
    RECONCILIATION_GRACE_SECONDS: int = 300

    # App
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"
    ENABLE_FILE_LOGGING: bool = False
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    @property
    def MAX_IMAGE_SIZE_BYTES(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024


settings = Settings()
