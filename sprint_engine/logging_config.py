"""Logging setup for the sprint engine.

Production emits one JSON object per line; every other environment gets a
colored, column-aligned console format.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

from sprint_engine.config import settings

SERVICE_NAME = "sprint_engine"

# Libraries that are chatty at INFO
_QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "asyncio": logging.WARNING,
    "uvicorn.access": logging.INFO,
}


# ── JSON Formatter ──


class SprintEngineJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that tags each record with service and environment."""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["service"] = SERVICE_NAME
        log_record["environment"] = settings.environment
        log_record["level"] = record.levelname.lower()
        log_record["logger"] = log_record.pop("name", record.name)
        log_record.setdefault(
            "timestamp",
            datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
        )

        for noise in ("asctime", "levelname", "msecs", "relativeCreated"):
            log_record.pop(noise, None)


# ── Console Formatter ──


class ColorFormatter(logging.Formatter):
    """Console formatter that colors the level name by severity."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colored = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            colored.levelname = f"{color}{record.levelname:<8}{self.RESET}"
        return super().format(colored)


# ── Setup ──


def setup_logging(level: str | None = None, json_output: bool | None = None) -> logging.Logger:
    """Install a single stdout handler on the root logger.

    Args:
        level: Overrides ``settings.log_level``
        json_output: Overrides the production-only JSON switch

    Returns:
        The root logger
    """
    if json_output is None:
        json_output = settings.environment == "production"
    level_name = (level or settings.log_level).upper()

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(SprintEngineJsonFormatter("%(name)s %(levelname)s %(message)s"))
    else:
        handler.setFormatter(ColorFormatter(
            fmt="%(asctime)s | %(levelname)s | %(name)-28s | %(message)s",
            datefmt="%H:%M:%S",
        ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    return root_logger
