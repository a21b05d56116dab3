"""
Tests for structured logging
"""

import json
import logging
import sys

import pytest

from perfwatch.structured_logging import (
    ColoredConsoleFormatter, StructuredFormatter, TelemetryEventFilter,
    configure_logging, get_telemetry_logger
)


def make_record(message="hello", structured_data=None, level=logging.INFO):
    record = logging.LogRecord("perfwatch.test", level, __file__, 10, message, (), None)
    if structured_data is not None:
        record.structured_data = structured_data
    return record


@pytest.fixture
def isolated_logger():
    name = "perfwatch.test_logging"
    yield name
    logger = logging.getLogger(name)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


class TestFormatters:
    def test_structured_formatter_emits_json(self):
        record = make_record(structured_data={"event": "report_sent", "counts": {"metrics": 3}})
        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["event"] == "report_sent"
        assert data["counts"] == {"metrics": 3}

    def test_structured_formatter_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(StructuredFormatter().format(record))
        assert "RuntimeError: boom" in data["exception"]

    def test_console_formatter_context(self):
        record = make_record(structured_data={
            "session_id": "perf_1700000000000_abcdefghi", "event": "performance_alert",
            "value": 5000, "severity": "high",
        })
        line = ColoredConsoleFormatter().format(record)

        assert "hello" in line
        assert "[bcdefghi]" in line
        assert "performance_alert" in line
        assert "(5000.0)" in line
        assert "[high]" in line


class TestEventFilter:
    def test_passes_only_telemetry_records(self):
        event_filter = TelemetryEventFilter()
        assert event_filter.filter(make_record(structured_data={"event": "report_sent"}))
        assert not event_filter.filter(make_record())

    def test_named_events(self):
        event_filter = TelemetryEventFilter("performance_alert")
        assert event_filter.filter(make_record(structured_data={"event": "performance_alert"}))
        assert not event_filter.filter(make_record(structured_data={"event": "report_sent"}))


class TestConfigureLogging:
    def test_console_only(self, isolated_logger):
        logger = configure_logging("debug", name=isolated_logger)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_reconfigure_does_not_duplicate(self, isolated_logger):
        configure_logging(name=isolated_logger)
        logger = configure_logging(name=isolated_logger)
        assert len(logger.handlers) == 1

    def test_log_dir_writes_json_lines(self, tmp_path, isolated_logger):
        logger = configure_logging("INFO", log_dir=str(tmp_path / "logs"), name=isolated_logger)
        telemetry = get_telemetry_logger(isolated_logger, session_id="perf_1_abc")

        logger.info("plain message")
        telemetry.log_report_sent({"metrics": 2, "vitals": 0, "errors": 0}, 200)
        for handler in logger.handlers:
            handler.flush()

        all_lines = (tmp_path / "logs" / f"{isolated_logger}.jsonl").read_text().splitlines()
        event_lines = (tmp_path / "logs" / f"{isolated_logger}_events.jsonl").read_text().splitlines()

        assert len(all_lines) == 2
        assert len(event_lines) == 1
        event = json.loads(event_lines[0])
        assert event["event"] == "report_sent"
        assert event["session_id"] == "perf_1_abc"
        assert event["status"] == 200


class TestTelemetryLogger:
    def test_alert_levels(self, caplog):
        telemetry = get_telemetry_logger("perfwatch.alerts_test")
        with caplog.at_level(logging.INFO, logger="perfwatch.alerts_test"):
            telemetry.log_alert("page_load_slow", "high", "Slow page load", 5000, True)
            telemetry.log_alert("page_load_slow", "medium", "Slow page load", 3000, False)

        high, medium = caplog.records
        assert high.levelno == logging.WARNING
        assert high.getMessage().startswith("🚨")
        assert medium.levelno == logging.INFO
        assert medium.structured_data["critical_content"] is False

    def test_capabilities_event(self, caplog):
        telemetry = get_telemetry_logger("perfwatch.capabilities_test")
        with caplog.at_level(logging.INFO, logger="perfwatch.capabilities_test"):
            telemetry.log_capabilities({"cpuCores": 8}, "high", "probe")

        record = caplog.records[0]
        assert record.structured_data == {
            "event": "capabilities_resolved", "mode": "high", "source": "probe", "capabilities": {"cpuCores": 8},
        }

    def test_report_failed(self, caplog):
        telemetry = get_telemetry_logger("perfwatch.report_test", session_id="s1")
        with caplog.at_level(logging.WARNING, logger="perfwatch.report_test"):
            telemetry.log_report_failed({"metrics": 1}, ValueError("nope"))

        data = caplog.records[0].structured_data
        assert data["error_type"] == "ValueError"
        assert data["session_id"] == "s1"

    def test_public_api_is_event_methods(self):
        telemetry = get_telemetry_logger("perfwatch.api_test")
        public = {name for name in dir(telemetry) if not name.startswith("_") and callable(getattr(telemetry, name))}
        assert public == {"log_alert", "log_capabilities", "log_report_failed", "log_report_sent"}
