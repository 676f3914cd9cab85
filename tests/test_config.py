from __future__ import annotations

import pytest

from bili_client.config import AppSettings, ConfigurationError

ENV_KEYS = (
    "BILI_ENV_FILE",
    "BILI_API_BASE_URL",
    "BILI_PASSPORT_BASE_URL",
    "BILI_WWW_BASE_URL",
    "BILI_TIMEOUT_SECONDS",
    "BILI_RETRY_ATTEMPTS",
    "BILI_CREDENTIAL_PATH",
    "BILI_USER_AGENT",
    "BILI_QR_POLL_INTERVAL_SECONDS",
    "BILI_QR_POLL_MAX_ATTEMPTS",
    "BILI_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # Registering each key first makes monkeypatch remove values the .env loader sets.
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("BILI_CREDENTIAL_PATH", str(tmp_path / "cred.json"))

    settings = AppSettings.from_env()

    assert settings.api_base_url == "https://api.bilibili.com"
    assert settings.timeout_seconds == 10
    assert settings.retry_attempts == 2
    assert settings.qr_poll_max_attempts == 60
    assert settings.credential_path == str(tmp_path / "cred.json")


def test_overrides_and_trailing_slash(monkeypatch):
    monkeypatch.setenv("BILI_API_BASE_URL", "http://localhost:8080/")
    monkeypatch.setenv("BILI_TIMEOUT_SECONDS", "3")
    monkeypatch.setenv("BILI_LOG_LEVEL", "debug")

    settings = AppSettings.from_env()

    assert settings.api_base_url == "http://localhost:8080"
    assert settings.timeout_seconds == 3
    assert settings.log_level == "DEBUG"


def test_env_file_is_read_without_overriding(tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("# comment\nBILI_TIMEOUT_SECONDS=7\nBILI_RETRY_ATTEMPTS='4'\n", encoding="utf-8")
    monkeypatch.setenv("BILI_ENV_FILE", str(env_file))
    monkeypatch.setenv("BILI_RETRY_ATTEMPTS", "1")

    settings = AppSettings.from_env()

    assert settings.timeout_seconds == 7
    assert settings.retry_attempts == 1


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("BILI_API_BASE_URL", "ftp://example.com"),
        ("BILI_TIMEOUT_SECONDS", "0"),
        ("BILI_TIMEOUT_SECONDS", "ten"),
        ("BILI_RETRY_ATTEMPTS", "-1"),
        ("BILI_QR_POLL_MAX_ATTEMPTS", "0"),
        ("BILI_LOG_LEVEL", "LOUD"),
    ],
)
def test_invalid_values(monkeypatch, key, value):
    monkeypatch.setenv(key, value)

    with pytest.raises(ConfigurationError):
        AppSettings.from_env()


def test_configure_logging_installs_one_handler():
    import logging

    from bili_client.logging_utils import configure_logging

    configure_logging("DEBUG")
    configure_logging("WARNING")

    logger = logging.getLogger("bili_client")
    handlers = [handler for handler in logger.handlers if getattr(handler, "_bili_client", False)]
    assert len(handlers) == 1
    assert logger.level == logging.WARNING
