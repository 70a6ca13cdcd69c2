"""Application configuration via pydantic-settings."""

import sqlite3

from pydantic import model_validator
from pydantic_settings import BaseSettings

assert sqlite3.sqlite_version_info >= (3, 25, 0), (
    f"SQLite >= 3.25.0 required for window functions, got {sqlite3.sqlite_version}"
)

SETUP_PLACEHOLDER = "GENERATED_DURING_SETUP"


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Database
    DB_PATH: str = "data/ruuvi.db"
    RETENTION_DAYS: int = 365

    # MQTT
    MQTT_ENABLED: bool = True
    MQTT_HOST: str = "localhost"
    MQTT_PORT: int = 8883
    MQTT_USER: str = "ruuvi"
    MQTT_PASS: str = ""
    MQTT_TLS: bool = False
    MQTT_TLS_INSECURE: bool = True  # gateways usually run self-signed certs
    MQTT_RECONNECT_SEC: int = 5
    MQTT_KEEPALIVE_SEC: int = 60

    # API / WebSocket
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3000

    # Admin
    ADMIN_PASSWORD: str | None = None
    ADMIN_PASSWORD_HASH: str | None = None
    SESSION_TTL_SEC: int = 24 * 60 * 60
    SESSION_SWEEP_SEC: int = 60 * 60

    # Ingestion
    MAX_TIMESTAMP_SKEW_SEC: int = 3600

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def DB_URL(self) -> str:  # noqa: N802
        return f"sqlite+aiosqlite:///{self.DB_PATH}"

    @property
    def mqtt_use_tls(self) -> bool:
        return self.MQTT_TLS or self.MQTT_PORT == 8883

    @model_validator(mode="after")
    def validate_mqtt_password(self) -> "Settings":
        if self.MQTT_PASS == SETUP_PLACEHOLDER:
            raise ValueError(
                "MQTT_PASS is still the setup placeholder; run the setup script first"
            )
        return self

    @model_validator(mode="after")
    def validate_intervals(self) -> "Settings":
        for name in ("MQTT_RECONNECT_SEC", "SESSION_TTL_SEC", "SESSION_SWEEP_SEC"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        return self
