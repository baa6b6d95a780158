"""
Speech service configuration.

Loads endpoints, keys and the workflow tuning knobs (poll bounds, chunk sizes,
pacing) from environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SPEAKER_ENDPOINT = "https://westus.api.cognitive.microsoft.com/spid/v1.0"
DEFAULT_STT_ENDPOINT = (
    "https://speech.platform.bing.com/speech/recognition/interactive/cognitiveservices/v1"
)
DEFAULT_SENTIMENT_ENDPOINT = "https://westeurope.api.cognitive.microsoft.com/text/analytics/v2.0"

STT_TRANSPORTS = ("auto", "websocket", "http")


def load_env_files(root: Optional[Path] = None) -> None:
    """Load .env_local / .env.local (local dev convenience). Never overrides real env vars."""
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _clean_env(key: str) -> Optional[str]:
    """Return the env value with trailing comments and whitespace stripped."""
    value = os.environ.get(key)
    if not value:
        return None

    # Strip comments (everything after #)
    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()
    return value or None


def parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "10  # attempts" -> 10
    - "10" -> 10
    - None / "abc" -> default
    """
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def parse_float_env(key: str, default: float) -> float:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class ServiceConfig:
    """Speech service configuration."""

    # Speaker Recognition (profiles, enrollment, streaming identification)
    speaker_key: str
    speaker_endpoint: str = DEFAULT_SPEAKER_ENDPOINT
    speaker_streaming_endpoint: Optional[str] = None
    profile_locale: str = "en-US"

    # Speech to text
    stt_key: Optional[str] = None
    stt_endpoint: str = DEFAULT_STT_ENDPOINT
    stt_streaming_endpoint: Optional[str] = None
    stt_transport: str = "auto"  # "auto" | "websocket" | "http"
    stt_locale: str = "en-GB"
    stt_chunk_bytes: int = 1024

    # Text sentiment
    sentiment_key: Optional[str] = None
    sentiment_endpoint: str = DEFAULT_SENTIMENT_ENDPOINT

    # Enrollment polling (worst case blocks a turn for attempts * interval)
    enrollment_max_attempts: int = 10
    enrollment_poll_interval_seconds: float = 5.0

    # Streaming recognition
    recognition_chunk_bytes: int = 32000
    recognition_pacing_seconds: float = 1.0
    recognition_step_seconds: int = 5
    recognition_window_seconds: int = 10
    recognition_result_timeout_seconds: float = 10.0

    http_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.speaker_key:
            raise ValueError("SPEAKER_RECOGNITION_KEY is required")
        if self.stt_transport not in STT_TRANSPORTS:
            raise ValueError(
                f"STT_TRANSPORT must be one of {', '.join(STT_TRANSPORTS)}, got '{self.stt_transport}'"
            )
        if self.enrollment_max_attempts < 1:
            raise ValueError("ENROLLMENT_MAX_ATTEMPTS must be at least 1")
        if self.recognition_chunk_bytes < 1 or self.stt_chunk_bytes < 1:
            raise ValueError("Chunk sizes must be positive")

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            speaker_key=os.environ.get("SPEAKER_RECOGNITION_KEY", ""),
            speaker_endpoint=os.environ.get("SPEAKER_RECOGNITION_ENDPOINT", DEFAULT_SPEAKER_ENDPOINT).rstrip("/"),
            speaker_streaming_endpoint=os.environ.get("SPEAKER_STREAMING_ENDPOINT") or None,
            profile_locale=os.environ.get("PROFILE_LOCALE", "en-US"),
            stt_key=os.environ.get("STT_KEY") or None,
            stt_endpoint=os.environ.get("STT_ENDPOINT", DEFAULT_STT_ENDPOINT),
            stt_streaming_endpoint=os.environ.get("STT_STREAMING_ENDPOINT") or None,
            stt_transport=os.environ.get("STT_TRANSPORT", "auto").lower(),
            stt_locale=os.environ.get("STT_LOCALE", "en-GB"),
            stt_chunk_bytes=parse_int_env("STT_CHUNK_BYTES", default=1024),
            sentiment_key=os.environ.get("SENTIMENT_KEY") or None,
            sentiment_endpoint=os.environ.get("SENTIMENT_ENDPOINT", DEFAULT_SENTIMENT_ENDPOINT).rstrip("/"),
            enrollment_max_attempts=parse_int_env("ENROLLMENT_MAX_ATTEMPTS", default=10),
            enrollment_poll_interval_seconds=parse_float_env("ENROLLMENT_POLL_INTERVAL_SECONDS", default=5.0),
            recognition_chunk_bytes=parse_int_env("RECOGNITION_CHUNK_BYTES", default=32000),
            recognition_pacing_seconds=parse_float_env("RECOGNITION_PACING_SECONDS", default=1.0),
            recognition_step_seconds=parse_int_env("RECOGNITION_STEP_SECONDS", default=5),
            recognition_window_seconds=parse_int_env("RECOGNITION_WINDOW_SECONDS", default=10),
            recognition_result_timeout_seconds=parse_float_env(
                "RECOGNITION_RESULT_TIMEOUT_SECONDS", default=10.0
            ),
            http_timeout_seconds=parse_float_env("HTTP_TIMEOUT_SECONDS", default=30.0),
        )


def get_config() -> ServiceConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        load_env_files()
        _config = ServiceConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[ServiceConfig] = None
