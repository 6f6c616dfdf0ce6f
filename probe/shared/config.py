"""Configuration loader for the probe server."""

import copy
import json
from pathlib import Path
from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {
        "bind": "127.0.0.1",
        "port": 11451,
        "token": "",
        "admin_token": None,
        "storage": "sqlite",
        "database": "probe.db",
        "redis_url": "redis://localhost:6379",
        "redis_prefix": "probe",
    },
    "telegram": {
        "bot_token": "",
        "api_server": None,
        "owner": 0,
    },
    "watchdog": {
        "timeout_seconds": 1200,
        "poll_interval_seconds": 10,
    },
    "client": {
        "minimum_version": "0",
    },
    "queue_size": 1024,
    "log_file": None,
    "log_level": "INFO",
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load server configuration from a JSON file, merged over defaults.

    Nested sections are merged key by key, so a file that only sets
    ``{"server": {"token": "..."}}`` keeps every other server default.

    Args:
        config_path: Path to the JSON configuration file.
        defaults: Default values; ``DEFAULT_CONFIG`` when omitted.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = json.load(f)

    base = copy.deepcopy(DEFAULT_CONFIG if defaults is None else defaults)
    return _merge(base, config)
