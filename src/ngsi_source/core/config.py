# ngsi_source/core/config.py
"""
Central configuration for the NGSI source runtime.

Environment variables (prefixed ``NGSI_SOURCE_``) override defaults.
Operator preferences themselves live in YAML files and are edited at
runtime; only the process-level knobs are kept here.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings with sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NGSI_SOURCE_",
        extra="ignore",
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    log_json: bool = False

    # Glob patterns of YAML files with the initial operator preferences
    preferences_config_paths: list[str] = Field(
        default_factory=lambda: ["config/preferences.yaml"]
    )

    # Pagination of the initial query
    page_size: int = Field(default=100, gt=0)
    max_pages: int = Field(default=100, gt=0)

    # Subscription renewal
    refresh_interval_seconds: float = Field(
        default=2 * 60 * 60,
        description="How often the subscription expiry is extended",
    )
    subscription_ttl_seconds: float = Field(
        default=3 * 60 * 60,
        description="Expiry set on each renewal, counted from now",
    )

    http_timeout: float = 30.0

    # Token forwarded when use_user_fiware_token is enabled (empty = none)
    fiware_token: str = ""

    # Output wiring over MQTT
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_topic_prefix: str = "ngsi-source"
    mqtt_client_id: str | None = None


settings = Settings()
