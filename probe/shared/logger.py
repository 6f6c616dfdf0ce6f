"""Structured JSON logging for the probe server."""

import json
import logging
from datetime import datetime, timezone

_defaults: dict = {"log_file": None, "level": logging.INFO}


class JsonFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": record.name.replace("probe.", "", 1),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if hasattr(record, "probe_data"):
            entry["data"] = record.probe_data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_handler(log_file: str | None) -> logging.Handler:
    if log_file:
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    return handler


def get_logger(
    component: str,
    log_file: str | None = None,
    level: int | None = None,
) -> logging.Logger:
    """Return a named logger that emits structured JSON.

    Args:
        component: Short name for the component (e.g. "watchdog").
        log_file: Optional path; writes JSON lines to this file instead of stderr.
        level: Logging level, defaults to the configured level (INFO).

    Returns:
        A ``logging.Logger`` instance named ``probe.<component>``.
    """
    logger = logging.getLogger(f"probe.{component}")
    logger.setLevel(level if level is not None else _defaults["level"])

    if not logger.handlers:
        logger.addHandler(_make_handler(log_file or _defaults["log_file"]))

    return logger


def configure_logging(log_file: str | None = None, level: int | str = logging.INFO):
    """Set the destination and level for every ``probe.*`` logger.

    Loggers created earlier are switched over; later ``get_logger`` calls
    pick up the same settings.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    unknown_level = None
    if not isinstance(level, int):
        unknown_level, level = level, logging.INFO
    _defaults["log_file"] = log_file
    _defaults["level"] = level

    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if not name.startswith("probe.") or not isinstance(logger, logging.Logger):
            continue
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.addHandler(_make_handler(log_file))
        logger.setLevel(level)

    if unknown_level is not None:
        get_logger("config").warning(f"Unknown log level {unknown_level!r}, using INFO")
