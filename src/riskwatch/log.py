"""Logging setup driven by application settings."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from riskwatch.config import Settings, get_settings


class JsonFormatter(jsonlogger.JsonFormatter):
    """Render log records as single-line JSON objects.

    Fields passed through ``extra`` are merged into the top-level object.
    """

    def __init__(self, fmt: str = "%(message)s", **kwargs: Any) -> None:
        super().__init__(fmt, **kwargs)

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["ts"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure the ``riskwatch`` logger hierarchy.

    Args:
        settings: Settings to read ``log_level`` and ``log_format`` from
            (uses the cached application settings if None)
    """
    settings = settings or get_settings()

    handler = logging.StreamHandler()
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    logger = logging.getLogger("riskwatch")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(settings.log_level.upper())
