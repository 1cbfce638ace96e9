"""
Tests for environment-driven queue settings.
"""

import logging
import os
from pathlib import Path

import pytest

from src.infra.settings import QueueSettings, get_project_root, load_settings


QUEUE_ENV_VARS = (
    "PRINT_QUEUE_DB_PATH",
    "PRINT_QUEUE_MAX_SIZE",
    "PRINT_QUEUE_MAX_RETRIES",
    "PRINT_QUEUE_RETRY_BASE_DELAY",
    "PRINT_QUEUE_PROCESSING_TIMEOUT",
    "PRINT_QUEUE_POLL_INTERVAL",
    "PRINT_QUEUE_WORK_DIR",
    "PRINT_QUEUE_AUTOSTART",
    "BADGE_TEMPLATES_DIR",
    "PRINTER_NAME",
    "PRINTER_SPOOL_DIR",
    "LOG_LEVEL",
    "LOG_DIR",
    "PRINTER_PRESET",
    "API_AUTH_ENABLED",
    "API_KEY",
)


@pytest.fixture
def clean_env(tmp_path):
    """Unset every queue variable and point dotenv at an empty file."""
    saved = {name: os.environ.pop(name) for name in QUEUE_ENV_VARS if name in os.environ}
    env_file = tmp_path / ".env"
    env_file.write_text("")

    yield env_file

    # load_dotenv writes into os.environ
    for name in QUEUE_ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


class TestLoadSettings:
    def test_defaults(self, clean_env):
        settings = load_settings(clean_env)

        assert settings.max_queue_size == 50
        assert settings.max_retries == 3
        assert settings.retry_base_delay == 1.0
        assert settings.processing_timeout == 30.0
        assert settings.poll_interval == 2.0
        assert settings.printer_name is None
        assert settings.autostart is True
        assert settings.log_level == "INFO"
        assert settings.api_auth_enabled is False
        assert settings.printer_preset is None
        assert settings.db_path == get_project_root() / "data" / "print_queue.db"

    def test_environment_overrides(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("PRINT_QUEUE_MAX_SIZE", "10")
        monkeypatch.setenv("PRINT_QUEUE_MAX_RETRIES", "5")
        monkeypatch.setenv("PRINT_QUEUE_RETRY_BASE_DELAY", "0.5")
        monkeypatch.setenv("PRINT_QUEUE_AUTOSTART", "off")
        monkeypatch.setenv("PRINTER_NAME", "Badge")
        monkeypatch.setenv("PRINT_QUEUE_DB_PATH", str(tmp_path / "queue.db"))

        settings = load_settings(clean_env)

        assert settings.max_queue_size == 10
        assert settings.max_retries == 5
        assert settings.retry_base_delay == 0.5
        assert settings.autostart is False
        assert settings.printer_name == "Badge"
        assert settings.db_path == tmp_path / "queue.db"

    def test_relative_paths_resolved_against_project_root(self, clean_env, monkeypatch):
        monkeypatch.setenv("PRINTER_SPOOL_DIR", "var/spool")

        settings = load_settings(clean_env)

        assert settings.spool_dir == get_project_root() / "var" / "spool"

    def test_dotenv_file_is_loaded(self, clean_env):
        clean_env.write_text("PRINT_QUEUE_MAX_SIZE=7\nPRINTER_NAME=FromDotenv\n")

        settings = load_settings(clean_env)

        assert settings.max_queue_size == 7
        assert settings.printer_name == "FromDotenv"

    def test_api_auth_from_dotenv(self, clean_env):
        clean_env.write_text("API_AUTH_ENABLED=true\nAPI_KEY=dotenv-key\n")

        settings = load_settings(clean_env)

        assert settings.api_auth_enabled is True
        assert settings.api_key == "dotenv-key"
        assert "dotenv-key" not in repr(settings)

    def test_printer_preset(self, clean_env, monkeypatch):
        monkeypatch.setenv("PRINTER_PRESET", "fast")

        assert load_settings(clean_env).printer_preset == "fast"

    def test_invalid_number_falls_back_with_warning(self, clean_env, monkeypatch, caplog):
        monkeypatch.setenv("PRINT_QUEUE_MAX_SIZE", "lots")
        monkeypatch.setenv("PRINT_QUEUE_POLL_INTERVAL", "soon")

        with caplog.at_level(logging.WARNING, logger="src.infra.settings"):
            settings = load_settings(clean_env)

        assert settings.max_queue_size == 50
        assert settings.poll_interval == 2.0
        assert "PRINT_QUEUE_MAX_SIZE" in caplog.text

    def test_out_of_range_value_rejected(self, clean_env, monkeypatch):
        monkeypatch.setenv("PRINT_QUEUE_MAX_RETRIES", "0")

        with pytest.raises(ValueError, match="max_retries"):
            load_settings(clean_env)


class TestQueueSettings:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_queue_size", 0),
            ("max_retries", 0),
            ("retry_base_delay", 0),
            ("processing_timeout", -1.0),
            ("poll_interval", 0.0),
        ],
    )
    def test_validation(self, field, value):
        with pytest.raises(ValueError, match=field):
            QueueSettings(**{field: value})

    def test_frozen(self):
        settings = QueueSettings()

        with pytest.raises(AttributeError):
            settings.max_retries = 10

    def test_defaults_are_paths(self):
        assert isinstance(QueueSettings().db_path, Path)
