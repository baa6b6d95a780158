"""
Shared logging infrastructure for habot.

One logging setup for the bot server, the dialog engine and the speech service
clients.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Conversation ID correlation across all logs
- Component tagging
- Keyword fields merged into the record (latency_ms, status, ...)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Component(str, Enum):
    """System components for log tagging."""
    BOT_SERVER = "bot_server"
    TURN_DISPATCHER = "turn_dispatcher"
    STATE_STORE = "state_store"
    DIALOG_ENGINE = "dialog_engine"
    ENROLLMENT = "enrollment"
    RECOGNITION = "recognition"
    SPEAKER_CLIENT = "speaker_client"
    STT = "stt"
    SENTIMENT = "sentiment"
    ATTACHMENTS = "attachments"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "conversation_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line carries:
    - ISO8601 timestamp
    - severity
    - component
    - conversation_id (when the logger is bound to one)
    - message plus any extra keyword fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "conversation_id"):
            log_data["conversation_id"] = record.conversation_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with structured JSON output.

    Usage:
        logger = StructuredLogger("dialog_engine", conversation_id="conv-1")
        logger.info("Dialog begun", dialog="MainDialog")
        logger.error("Enrollment poll failed", error="details")
    """

    def __init__(
        self,
        component: str | Component,
        conversation_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.conversation_id = conversation_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {"component": self.component, **kwargs}
        if self.conversation_id:
            extra["conversation_id"] = self.conversation_id

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def with_conversation(self, conversation_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a conversation."""
        return StructuredLogger(
            self.component,
            conversation_id=conversation_id,
            logger_name=self.logger.name
        )


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    """
    Configure the root logger. Call once at application startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or a plain text line (False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if use_json:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(levelname)s - %(component)s - %(message)s",
                defaults={"component": "external"},
            )
        )

    root_logger.addHandler(console_handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(
    component: str | Component,
    conversation_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.ENROLLMENT, conversation_id="conv-1")
        logger.info("Enrollment submitted")
    """
    return StructuredLogger(component, conversation_id=conversation_id)
