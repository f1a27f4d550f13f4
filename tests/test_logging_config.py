"""Tests for logger setup driven by the application settings."""
import logging
from logging.handlers import RotatingFileHandler

from admissions_scheduler.base import logging_config
from admissions_scheduler.base.config import settings
from admissions_scheduler.base.logging_config import RequestContextFilter, request_id_var, setup_logger


def test_file_handler_follows_log_to_file_setting(monkeypatch, tmp_path):
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path)

    monkeypatch.setattr(settings, "LOG_TO_FILE", False)
    quiet = setup_logger("tests.stdout_only", log_file="stdout_only.log")
    assert [type(h) for h in quiet.handlers] == [logging.StreamHandler]

    monkeypatch.setattr(settings, "LOG_TO_FILE", True)
    both = setup_logger("tests.with_file", log_file="with_file.log")
    try:
        assert any(isinstance(h, RotatingFileHandler) for h in both.handlers)
        assert (tmp_path / "with_file.log").exists()
    finally:
        for handler in both.handlers:
            handler.close()
        both.handlers.clear()


def test_level_and_json_switch_come_from_settings():
    logger = setup_logger("tests.defaults")

    assert logger.level == logging.getLevelName(settings.LOG_LEVEL.upper())
    formatter = logger.handlers[0].formatter
    assert isinstance(formatter, logging_config.JsonFormatter) == settings.ENABLE_JSON_LOGS


def test_records_carry_request_context():
    record = logging.LogRecord("scheduler", logging.INFO, __file__, 1, "booked", None, None)
    token = request_id_var.set("req-123")
    try:
        RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(token)

    assert record.request_id == "req-123"
    assert record.user_id == "-"
