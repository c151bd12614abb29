from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/templink.db"
    REDIS_URL: Optional[str] = None
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:8000"

    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7
    BCRYPT_ROUNDS: int = 10
    PASSWORD_MIN_LENGTH: int = 6

    SHORT_ID_LENGTH: int = 8
    TOKEN_SECRET_LENGTH: int = 32
    VERIFICATION_TOKEN_TTL_MINUTES: int = 24 * 60
    RESET_TOKEN_TTL_MINUTES: int = 60

    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60

    CLEANUP_ENABLED: bool = False
    CLEANUP_INTERVAL_SECONDS: int = 3600

    EMAIL_FROM: str = '"TempLink" <noreply@templink.com>'

    class Config:
        env_file = ".env"


settings = Settings()
