"""Tests for logging configuration and credential redaction."""

from __future__ import annotations

import pytest
import structlog

from databasekit.config import DatabaseSettings
from databasekit.shared.utils.logging import configure_logging, redact_connection_strings, redact_url


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestRedaction:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgresql+asyncpg://app:secret@db:5432/app", "postgresql+asyncpg://db:5432/app"),
            ("mongodb://u:p@a:27017,b:27017/app?replicaSet=rs0", "mongodb://a:27017,b:27017/app?replicaSet=rs0"),
            ("mongodb://localhost:27017/app", "mongodb://localhost:27017/app"),
        ],
    )
    def test_redact_url(self, url, expected):
        assert redact_url(url) == expected

    def test_processor_redacts_url_keys_only(self):
        event = {"event": "connected", "url": "postgresql://app:secret@db/app", "note": "a:b@c"}

        result = redact_connection_strings(None, "info", event)

        assert result["url"] == "postgresql://db/app"
        assert result["note"] == "a:b@c"


class TestConfigureLogging:
    def test_settings_drive_renderer(self, monkeypatch):
        monkeypatch.setenv("DATABASE_LOG_JSON", "false")
        settings = DatabaseSettings(_env_file=None)

        configure_logging(settings)

        processors = structlog.get_config()["processors"]
        assert redact_connection_strings in processors
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_explicit_arguments_win(self):
        configure_logging(DatabaseSettings(_env_file=None, log_json=False), json_format=True, service_name="orders")

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.contextvars.get_contextvars() == {"service": "orders"}

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            configure_logging(level="LOUD")
