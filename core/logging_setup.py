"""
Logging setup

Two output formats:
- json: one JSON object per line (event lines for log processors)
- readable: the classic "time - name - level - message" layout
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

READABLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# LogRecord attributes that are not user supplied `extra` fields
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Formats records as JSON lines. Fields passed via `extra=` are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure root logging.

    Args:
        log_level: Level name (DEBUG, INFO, ...)
        log_format: "json" or "readable"
        log_file: Optional file to mirror output into

    Returns:
        The root logger
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    formatter: logging.Formatter
    if log_format == "readable":
        formatter = logging.Formatter(READABLE_FORMAT)
    else:
        formatter = JsonFormatter()

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    # websockets/httpx are chatty at DEBUG
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger()
