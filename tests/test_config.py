"""
Unit tests for environment configuration and logging helpers.
"""

import logging

import pytest

from backend.mdpdf.config import ConfigError, Settings
from backend.mdpdf.logging_utils import get_logger, request_logger


class TestSettingsFromEnv:
    """Settings.from_env()."""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings == Settings()
        assert settings.port == 8080
        assert settings.renderer == "reflow"
        assert settings.allowed_origins == ()
        assert settings.is_production is False

    def test_reads_all_fields(self):
        settings = Settings.from_env(
            {
                "PORT": "9000",
                "MDPDF_ENVIRONMENT": "Production",
                "MDPDF_RENDERER": "DIRECT",
                "MDPDF_ALLOWED_ORIGINS": "https://app.example.com/, https://admin.example.com,,",
                "MDPDF_CHROMIUM_PATH": "/usr/bin/chromium",
                "MDPDF_CHROMIUM_NO_SANDBOX": "no",
                "MDPDF_CONTENT_TIMEOUT_MS": "5000",
                "MDPDF_CAPTURE_TIMEOUT_MS": "7000",
                "MDPDF_MAX_CONCURRENT_SESSIONS": "2",
                "MDPDF_MAX_BODY_BYTES": "65536",
                "MDPDF_PROBE_ON_STARTUP": "off",
                "MDPDF_LOG_LEVEL": "debug",
            }
        )
        assert settings.port == 9000
        assert settings.environment == "production"
        assert settings.is_production is True
        assert settings.renderer == "direct"
        assert settings.allowed_origins == ("https://app.example.com", "https://admin.example.com")
        assert settings.chromium_path == "/usr/bin/chromium"
        assert settings.chromium_no_sandbox is False
        assert settings.content_timeout_ms == 5000
        assert settings.capture_timeout_ms == 7000
        assert settings.max_concurrent_sessions == 2
        assert settings.max_body_bytes == 65536
        assert settings.probe_on_startup is False
        assert settings.log_level == "DEBUG"

    def test_legacy_variable_names(self):
        settings = Settings.from_env({"ENVIRONMENT": "staging", "PUPPETEER_EXECUTABLE_PATH": "/opt/chrome"})
        assert settings.environment == "staging"
        assert settings.chromium_path == "/opt/chrome"

    def test_prefixed_names_win(self):
        settings = Settings.from_env({"ENVIRONMENT": "staging", "MDPDF_ENVIRONMENT": "production"})
        assert settings.environment == "production"

    @pytest.mark.parametrize(
        "env",
        [
            {"PORT": "eighty"},
            {"PORT": "0"},
            {"MDPDF_CAPTURE_TIMEOUT_MS": "-1"},
            {"MDPDF_RENDERER": "wkhtmltopdf"},
            {"MDPDF_MAX_BODY_BYTES": "0"},
            {"MDPDF_PROBE_ON_STARTUP": "maybe"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigError):
            Settings.from_env(env)

    def test_settings_are_immutable(self):
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.port = 1


class TestRequestLogger:
    """Request-scoped logging."""

    def test_prefixes_request_id(self, caplog):
        rlog = request_logger(get_logger("mdpdf.test"), "abc123")
        with caplog.at_level(logging.INFO, logger="mdpdf.test"):
            rlog.info("Rendering %d chars", 42)
        assert "[req=abc123] Rendering 42 chars" in caplog.text
