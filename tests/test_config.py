"""Tests for settings, logging configuration and error formatting."""

import json
import logging

from vendops.config.logging import JSONFormatter, build_logging_config, log_data_quality, log_performance
from vendops.config.settings import (
    DevelopmentSettings,
    ProductionSettings,
    Settings,
    TestingSettings,
    get_settings_by_env,
)
from vendops.core.exceptions import BadRequestError, InvalidGroupingError, format_error_response


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.DEFAULT_WINDOW_DAYS == 30
        assert settings.DEFAULT_TOP_N == 5

    def test_settings_by_env(self):
        assert isinstance(get_settings_by_env("development"), DevelopmentSettings)
        assert isinstance(get_settings_by_env("production"), ProductionSettings)
        assert isinstance(get_settings_by_env("testing"), TestingSettings)
        assert type(get_settings_by_env("staging")) is Settings

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_TOP_N", "10")
        assert Settings().DEFAULT_TOP_N == 10


class TestLoggingConfig:
    def test_console_only_without_log_file(self):
        config = build_logging_config(Settings(LOG_FILE=None))
        assert set(config["handlers"]) == {"console"}
        assert config["loggers"]["vendops"]["handlers"] == ["console"]

    def test_file_handler_uses_json(self, tmp_path):
        config = build_logging_config(Settings(LOG_FILE=str(tmp_path / "vendops.log")))
        assert config["handlers"]["file"]["formatter"] == "json"
        assert config["loggers"]["vendops"]["handlers"] == ["console", "file"]

    def test_debug_uses_colored_console(self):
        config = build_logging_config(DevelopmentSettings())
        assert config["handlers"]["console"]["formatter"] == "colored"

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord("vendops.api", logging.INFO, __file__, 1, "GET /health", None, None)
        record.request_id = "abc"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "GET /health"
        assert entry["request_id"] == "abc"

    def test_data_quality_skips_zero_counts(self, quality_logs):
        log_data_quality("invalid_timestamp", 0)
        log_data_quality("invalid_timestamp", 2, "sales excluded")

        assert quality_logs() == ["Data quality: invalid_timestamp (2 records) - sales excluded"]

    def test_log_performance_keeps_return_value(self):
        @log_performance("vendops.tests")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"


class TestErrorFormatting:
    def test_bad_request(self):
        body = format_error_response(BadRequestError("window must be positive", field="days"))
        assert body == {
            "error": True,
            "error_code": "BAD_REQUEST",
            "message": "window must be positive",
            "status_code": 400,
            "field": "days",
        }

    def test_validation_error_details(self):
        body = format_error_response(InvalidGroupingError("planet", ["machine", "product"]))
        assert body["status_code"] == 422
        assert body["errors"][0]["code"] == "INVALID_GROUPING"
        assert body["errors"][0]["details"] == {"provided_group_by": "planet"}
