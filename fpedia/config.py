"""
F-PEDIA settings.

Everything is read from the environment (or a local `.env`). The server
builds one instance on startup and keeps it on `app.state.settings`.
"""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )

    # Database
    DATABASE_URL: str = "sqlite:///./fpedia.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_GATE_LIMIT: Optional[int] = None

    # Rate limiting: 'pg' (table) | 'redis'
    RATELIMIT_BACKEND: str = "pg"
    REDIS_URL: str = "redis://127.0.0.1:6379"
    REDIS_MAX_CONN: int = 64

    # Admin (single operator)
    SESSION_SECRET: str = "dev-secret-change-me"
    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""
    ADMIN_WHATSAPP_NUMBER: str = ""
    CRON_SECRET: str = ""

    SITE_URL: str = "http://localhost:8000"

    # Pakasir QRIS
    PAKASIR_BASE_URL: str = "https://app.pakasir.com"
    PAKASIR_PROJECT_SLUG: str = ""
    PAKASIR_API_KEY: str = ""

    # WhatsApp gateway
    WHATSAPP_API_URL: str = "http://localhost:3001"
    WHATSAPP_API_SECRET: str = ""

    # Mail
    EMAIL_USER: str = ""
    EMAIL_PASS: str = ""
    EMAIL_FROM_NAME: str = "F-PEDIA"
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    EMAIL_DRY_RUN: bool = False

    # AES-256 key for credentials at rest, must be 32 chars
    ENCRYPTION_KEY: str = ""

    MAINTENANCE_MODE: bool = False

    # Notifications: 'background' | 'inline'
    NOTIFY_MODE: str = "background"
    NOTIFY_MAX_ATTEMPTS: int = 1

    LOG_LEVEL: str = "INFO"

    @property
    def pakasir_enabled(self) -> bool:
        return bool(self.PAKASIR_PROJECT_SLUG and self.PAKASIR_API_KEY)


def get_settings() -> Settings:
    return Settings()
