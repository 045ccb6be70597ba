from __future__ import annotations

import enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AlertChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "still-alive"
    environment: str = "dev"
    app_base_url: str = Field(default="http://localhost:3000", alias="APP_BASE_URL")

    # Database
    database_url: str = Field(default="sqlite:///./still_alive.db", alias="DATABASE_URL")

    # Redis / Celery
    celery_broker_url: str = Field(default="redis://localhost:6379/0", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://localhost:6379/1", alias="CELERY_RESULT_BACKEND")

    # Alerting
    alert_channel: AlertChannel = Field(default=AlertChannel.EMAIL, alias="ALERT_CHANNEL")
    mia_sweep_interval_seconds: int = Field(default=3600, alias="MIA_SWEEP_INTERVAL_SECONDS")
    contact_confirmation_hours: int = Field(default=24, alias="CONTACT_CONFIRMATION_HOURS")

    # SMTP
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int | None = Field(default=None, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_pass: str | None = Field(default=None, alias="SMTP_PASS")
    smtp_from: str | None = Field(default=None, alias="SMTP_FROM")

    # Twilio
    twilio_account_sid: str | None = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: str | None = Field(default=None, alias="TWILIO_FROM_NUMBER")


settings = Settings()
