"""Tests for environment configuration."""

from __future__ import annotations

import pytest

from uplift import config
from uplift.config import Settings, load_settings


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: None)


def test_defaults():
    assert load_settings() == Settings()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("UPLIFT_ADDRESS", "AA:BB:CC:DD:EE:FF")
    monkeypatch.setenv("UPLIFT_SCAN_TIMEOUT", "4.5")
    monkeypatch.setenv("UPLIFT_TOLERANCE", "0.1")
    monkeypatch.setenv("UPLIFT_MAX_CORRECTIONS", "12")
    monkeypatch.setenv("UPLIFT_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.address == "AA:BB:CC:DD:EE:FF"
    assert settings.scan_timeout == 4.5
    assert settings.tolerance == 0.1
    assert settings.max_corrections == 12
    assert settings.log_level == "DEBUG"
    assert settings.connect_timeout == Settings.connect_timeout


@pytest.mark.parametrize("name, value", [("UPLIFT_SET_TIMEOUT", "soon"), ("UPLIFT_MAX_CORRECTIONS", "4.5")])
def test_invalid_numbers(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        load_settings()


@pytest.mark.parametrize("value", ["LOUD", "3"])
def test_invalid_log_level(monkeypatch, value):
    monkeypatch.setenv("UPLIFT_LOG_LEVEL", value)
    with pytest.raises(ValueError, match="UPLIFT_LOG_LEVEL"):
        load_settings()
