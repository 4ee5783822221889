"""Configuration loading and logging setup tests."""

from __future__ import annotations

import json
import logging
import os

import pytest
from service_commons.config import ConfigurationError
from service_commons.logging import JSONFormatter

from marketplace_service.config import Settings, clear_settings_cache, get_safe_config, get_settings
from marketplace_service.logging import get_logger, setup_logging

VALID_CONFIG = """
service:
  name: "marketplace"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "INFO"
  directory: null
database:
  path: "data/marketplace.db"
payments:
  default_markup_percentage: "100"
  transaction_history_limit: 50
  self_service_topup: false
request:
  max_body_size: 1048576
"""


def _write_config(tmp_path, content: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content)
    os.environ["CONFIG_PATH"] = str(config_path)
    clear_settings_cache()


@pytest.mark.unit
def test_config_loads_from_yaml(tmp_path):
    """Config loads correctly from a valid YAML file."""
    _write_config(tmp_path, VALID_CONFIG)

    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service.name == "marketplace"
    assert settings.server.port == 8010
    assert settings.logging.directory is None
    assert settings.database.path == "data/marketplace.db"
    assert settings.payments.default_markup_percentage == "100"
    assert settings.payments.transaction_history_limit == 50
    assert settings.payments.self_service_topup is False
    assert settings.request.max_body_size == 1048576


@pytest.mark.unit
def test_config_is_cached_until_cleared(tmp_path):
    _write_config(tmp_path, VALID_CONFIG)
    assert get_settings() is get_settings()

    _write_config(tmp_path, VALID_CONFIG.replace("port: 8010", "port: 9010"))
    assert get_settings().server.port == 9010


@pytest.mark.unit
def test_config_rejects_extra_fields(tmp_path):
    """Config with extra fields causes validation error."""
    _write_config(tmp_path, VALID_CONFIG.replace('version: "0.1.0"', 'version: "0.1.0"\n  extra: 1'))

    with pytest.raises(ConfigurationError):
        get_settings()


@pytest.mark.unit
def test_config_requires_every_section(tmp_path):
    """There are no defaults: a missing section fails startup."""
    without_payments = VALID_CONFIG.split("payments:")[0] + "request:\n  max_body_size: 1048576\n"
    _write_config(tmp_path, without_payments)

    with pytest.raises(ConfigurationError):
        get_settings()


@pytest.mark.unit
def test_missing_config_file(tmp_path):
    os.environ["CONFIG_PATH"] = str(tmp_path / "absent.yaml")
    clear_settings_cache()

    with pytest.raises(ConfigurationError, match="not found"):
        get_settings()


@pytest.mark.unit
def test_safe_config_is_plain_data(tmp_path):
    _write_config(tmp_path, VALID_CONFIG)

    safe = get_safe_config()

    assert safe["payments"]["default_markup_percentage"] == "100"
    assert safe["database"]["path"] == "data/marketplace.db"


@pytest.mark.unit
def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord(
        "marketplace_service.test", logging.INFO, __file__, 1, "Payment processed", None, None
    )
    record.task_id = "task-1"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["message"] == "Payment processed"
    assert payload["extra"] == {"task_id": "task-1"}
    assert payload["timestamp"].endswith("Z")


@pytest.mark.unit
def test_setup_logging_writes_daily_file(tmp_path):
    log_dir = tmp_path / "logs"
    logger = setup_logging("INFO", "marketplace", str(log_dir))

    get_logger("services.test").info("Task created", extra={"task_id": "task-1"})
    for handler in logger.handlers:
        handler.flush()

    files = list(log_dir.glob("*.log"))
    assert len(files) == 1
    line = json.loads(files[0].read_text().strip().splitlines()[-1])
    assert line["logger"] == "marketplace_service.services.test"
    assert line["extra"]["task_id"] == "task-1"

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


@pytest.mark.unit
def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError, match="Invalid log level"):
        setup_logging("LOUD", "marketplace", None)
