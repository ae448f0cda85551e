"""
Application settings
Read from environment variables (and an optional .env file)
"""
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    APP_NAME: str = "Ocean View Resort Reservations"
    LOG_LEVEL: str = "INFO"

    # JWT for staff sessions
    SECRET_KEY: str = "your-secret-key-keep-it-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Entity store
    MAX_TRANSACTION_RETRIES: int = 3
    LOCK_TIMEOUT_SECONDS: float = 5.0

    # Notifications: "log" simulates delivery, "smtp" sends real mail
    NOTIFICATION_TRANSPORT: str = "log"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_USE_TLS: bool = True

    # Start-up data
    SEED_SAMPLE_DATA: bool = True
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD: str = "admin123"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
