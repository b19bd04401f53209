"""Application configuration settings."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel


# Ensure environment variables from a .env file are loaded before accessing them.
load_dotenv()


class Settings(BaseModel):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./roomcast.db")
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DEFAULT_COHORT: str = os.getenv("DEFAULT_COHORT", "morning")
    DEDUP_REJECT_SECONDS: float = float(os.getenv("DEDUP_REJECT_SECONDS", "5"))
    DEDUP_RETENTION_SECONDS: float = float(os.getenv("DEDUP_RETENTION_SECONDS", "10"))
    PREVIEW_LENGTH: int = int(os.getenv("PREVIEW_LENGTH", "50"))
    SYSTEM_SENDER_ID: str = os.getenv("SYSTEM_SENDER_ID", "-1")
    SYSTEM_SENDER_NAME: str = os.getenv("SYSTEM_SENDER_NAME", "النظام")


settings = Settings()
