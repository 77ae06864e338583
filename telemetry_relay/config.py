# telemetry_relay/config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    # Network (one port carries both WebSocket and HTTP)
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8081, ge=0, le=65535)

    # Liveness
    HEARTBEAT_INTERVAL: float = Field(default=30.0, gt=0)  # seconds
    HANDSHAKE_TIMEOUT: float = Field(default=10.0, gt=0)   # seconds, handshake policy only
    SEND_TIMEOUT: float = Field(default=5.0, gt=0)         # seconds per send or ping before eviction

    # Role classification
    ROLE_POLICY: Literal["header", "handshake"] = "header"
    PRODUCER_HEADER: str = "X-Device-Type"
    PRODUCER_HEADER_VALUE: str = "arduino-publisher"

    # Outgoing frames
    WRAP_SAMPLES: bool = False
    MAX_MESSAGE_SIZE: int = 2**20

    # HTTP collaborator
    STATIC_DIR: str = "static"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )


settings = Settings()
