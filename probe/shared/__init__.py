"""Shared utilities for the probe server."""

from probe.shared.logger import configure_logging, get_logger
from probe.shared.config import load_config, DEFAULT_CONFIG

__all__ = ["configure_logging", "get_logger", "load_config", "DEFAULT_CONFIG"]
