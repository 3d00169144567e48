"""
Unit Tests - Logging Configuration
"""
import json
import logging

import pytest
import structlog

from netpulse.config.logging import configure_logging
from netpulse.config.settings import DatabaseSettings, MonitoringSettings, Settings


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


def _settings(log_format="json", echo=False):
    return Settings(
        app_env="testing",
        monitoring=MonitoringSettings(log_format=log_format),
        database=DatabaseSettings(echo=echo),
    )


class TestConfigureLogging:
    """Tests for the shared structlog/stdlib setup"""

    def test_json_lines_carry_service_context(self, capsys):
        configure_logging(settings=_settings())
        capsys.readouterr()

        structlog.get_logger("netpulse.pipeline").info("Request enriched", request_id="req-1")

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line["event"] == "Request enriched"
        assert line["request_id"] == "req-1"
        assert line["service"] == "netpulse-analytics"
        assert line["environment"] == "testing"
        assert line["level"] == "info"

    def test_stdlib_loggers_share_the_handler(self, capsys):
        configure_logging(settings=_settings())
        capsys.readouterr()

        logging.getLogger("uvicorn.error").warning("Shutting down")

        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert line["event"] == "Shutting down"
        assert line["logger"] == "uvicorn.error"
        assert len(logging.getLogger().handlers) == 1

    def test_level_override(self):
        configure_logging(log_level="warning", settings=_settings())

        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.parametrize("echo,level", [(False, logging.WARNING), (True, logging.INFO)])
    def test_sql_echo_controls_engine_logger(self, echo, level):
        configure_logging(settings=_settings(echo=echo))

        assert logging.getLogger("sqlalchemy.engine").level == level
        assert logging.getLogger("aiosqlite").level == logging.WARNING
