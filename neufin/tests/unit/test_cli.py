"""
NEUFIN — Unit Tests for the Command Line Entry Point
"""
import os

import pytest
from fastapi.testclient import TestClient

import main
from neufin.api.app import create_app
from neufin.api.container import wire_services
from neufin.config.settings import AppSettings, get_settings
from neufin.data.resolver import QuoteResolver
from neufin.db.store import InMemoryPortfolioStore


@pytest.fixture
def settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "log_level", "INFO")
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    return settings


class TestLogLevelOverride:
    def test_override_is_stored(self, settings):
        main.apply_log_level("debug")
        assert settings.log_level == "DEBUG"
        # reloader workers build settings from the environment
        assert os.environ["LOG_LEVEL"] == "DEBUG"

    def test_no_override_keeps_configured_level(self, settings):
        main.apply_log_level(None)
        assert settings.log_level == "INFO"
        assert os.environ["LOG_LEVEL"] == "INFO"

    def test_lifespan_logging_uses_override(self, settings, monkeypatch):
        levels = []
        monkeypatch.setattr(
            "neufin.api.app.setup_logging", lambda level=None: levels.append(level or get_settings().log_level)
        )
        main.apply_log_level("warning")

        store = InMemoryPortfolioStore()
        services = wire_services(
            store,
            resolver=QuoteResolver(providers=[], store=store),
            settings=AppSettings(background_refresh=False),
        )
        with TestClient(create_app(services=services)):
            pass
        assert levels == ["WARNING"]
