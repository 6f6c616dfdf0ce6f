"""Tests for the structured JSON logger."""

import json
import logging
import uuid

import pytest

from probe.shared.logger import configure_logging, get_logger


def _unique_name(base: str) -> str:
    """Return a unique logger name to avoid cross-test pollution."""
    return f"{base}_{uuid.uuid4().hex[:8]}"


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    configure_logging(None, logging.INFO)


def test_logger_returns_named_logger():
    name = _unique_name("watchdog")
    logger = get_logger(name)
    assert logger.name == f"probe.{name}"


def test_logger_formats_json(tmp_path):
    log_file = tmp_path / "test.log"
    name = _unique_name("ingest")
    logger = get_logger(name, log_file=str(log_file))
    logger.info("client registered", extra={"probe_data": {"id": 7}})

    content = log_file.read_text()
    record = json.loads(content.strip().split("\n")[-1])
    assert record["component"] == name
    assert record["message"] == "client registered"
    assert record["data"]["id"] == 7


def test_logger_default_level():
    name = _unique_name("notifier")
    logger = get_logger(name)
    assert logger.level == logging.INFO


def test_configure_logging_redirects_existing_loggers(tmp_path):
    name = _unique_name("registry")
    logger = get_logger(name)
    log_file = tmp_path / "probe.log"

    configure_logging(str(log_file), "warning")
    logger.info("hidden")
    logger.warning("visible")

    lines = log_file.read_text().strip().split("\n")
    assert len(lines) == 1
    assert json.loads(lines[0])["message"] == "visible"
    assert get_logger(_unique_name("web")).level == logging.WARNING


def test_configure_logging_unknown_level_falls_back_to_info():
    name = _unique_name("server")
    logger = get_logger(name)

    configure_logging(None, "loud")

    assert logger.level == logging.INFO
    assert get_logger(_unique_name("web")).level == logging.INFO
