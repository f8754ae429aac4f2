"""
Logging setup shared by all services.

Plain text by default; JSON lines when LOG_JSON is enabled so that
fields passed through ``extra=`` reach log aggregators.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from basecore.settings import get_settings

# Attributes every LogRecord has; anything else came in through ``extra=``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to LOG_LEVEL from settings
        json_output: Emit JSON lines; defaults to LOG_JSON from settings
    """
    settings = get_settings()
    level = level or settings.LOG_LEVEL
    json_output = settings.LOG_JSON if json_output is None else json_output

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
    root_logger.addHandler(handler)

    # SQLAlchemy echoes through its own loggers; keep them quiet unless debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
