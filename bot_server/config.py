"""
Bot server configuration.
Loads from environment variables with sensible defaults.
"""
import os
from dataclasses import dataclass

from speech_services.config import parse_int_env


@dataclass
class ServerConfig:
    """HTTP host configuration."""

    host: str = "0.0.0.0"
    port: int = 3978
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            host=os.environ.get("BOT_HOST", "0.0.0.0"),
            port=parse_int_env("BOT_PORT", default=3978),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_json=os.environ.get("LOG_JSON", "true").strip().lower() not in ("0", "false", "no"),
        )
