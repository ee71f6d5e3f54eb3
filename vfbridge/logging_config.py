"""JSON logging for the Voiceflow bridge.

Every line carries ``service`` and, when given, a ``context`` object. Bot
API URLs embed the bot token (``/bot<id>:<secret>/``), and httpx puts the
URL into its error messages, so tokens are masked before a line is written.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "vf-telegram-bridge"

_BOT_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")
_REDACTED = "bot<redacted>"


def redact(text: str) -> str:
    return _BOT_TOKEN_RE.sub(_REDACTED, text)


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = redact(self.formatException(record.exc_info))

        return redact(json.dumps(log_data, ensure_ascii=False, default=str))


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO, token included
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"vfbridge.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that merges per-event context (update, chat, user) into records.

    ``None`` values in the bound context are dropped, so an update without
    an ``update_id`` does not log ``"update_id": null`` on every line.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict[str, Any]] = None):
        bound = {key: value for key, value in (extra or {}).items() if value is not None}
        super().__init__(logger, bound)

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        if context or self.extra:
            kwargs["extra"] = {"context": {**self.extra, **(context or {})}}
        return msg, kwargs
