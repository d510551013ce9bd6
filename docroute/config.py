from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONFLICT_RETRIES,
    DEFAULT_REMINDER_ADVANCE_DAYS,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_RETENTION_NOTIFY_DAYS_BEFORE,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport used to receive pushed return payloads."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    topic: str = "returns"
    redis: RedisConfig = RedisConfig()


class RetentionConfig(BaseModel):
    """Post-terminal content retention policy."""

    enabled: bool = True
    days: int = DEFAULT_RETENTION_DAYS
    mode: Literal["content_only", "full"] = "content_only"
    exclude_statuses: list[str] = []
    notify_before_deletion: bool = True
    notify_days_before: int = DEFAULT_RETENTION_NOTIFY_DAYS_BEFORE


class ReminderConfig(BaseModel):
    enabled: bool = True
    advance_days: int = DEFAULT_REMINDER_ADVANCE_DAYS


class EmailJSConfig(BaseModel):
    service_id: Optional[str] = None
    template_id: Optional[str] = None
    public_key: Optional[str] = None
    api_url: str = "https://api.emailjs.com/api/v1.0/email/send"

    @property
    def is_configured(self) -> bool:
        return bool(self.service_id and self.template_id and self.public_key)


class DispatchConfig(BaseModel):
    """Settings for packaging and notifying the next participant."""

    timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    upload_url: Optional[str] = None
    upload_token: Optional[str] = None
    emailjs: EmailJSConfig = EmailJSConfig()


class EngineConfig(BaseModel):
    max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES
    auto_advance: bool = True


class DocrouteConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    transport: TransportConfig = TransportConfig()
    retention: RetentionConfig = RetentionConfig()
    reminders: ReminderConfig = ReminderConfig()
    dispatch: DispatchConfig = DispatchConfig()
    engine: EngineConfig = EngineConfig()


def load_config(path: Optional[str] = None) -> DocrouteConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DOCROUTE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("DOCROUTE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DocrouteConfig(**data)
    else:
        config = DocrouteConfig()

    env_db_url = os.getenv("DOCROUTE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
