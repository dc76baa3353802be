"""
Unit tests for the logging sinks.
"""

import logging
import os
from datetime import date, timedelta

from jsonhttp.logger import FileLogger, Level, StdLogger, log_error


class TestLevel:

    def test_maps_to_logging_levels(self):
        assert Level.WARN == logging.WARNING
        assert Level.ERROR == logging.ERROR
        assert Level.PANIC == logging.CRITICAL


class TestStdLogger:

    def test_values_joined_with_spaces(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="jsonhttp"):
            StdLogger().log(Level.WARN, "POST /hi", 400, "name is empty")

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].getMessage() == "POST /hi 400 name is empty"


class TestFileLogger:

    def test_writes_daily_file(self, tmp_path):
        sink = FileLogger(str(tmp_path / "logs"))
        try:
            sink.log(Level.INFO, "jsonhttp: start listen", ":8080")
        finally:
            sink.close()

        path = tmp_path / "logs" / f"{date.today():%Y-%m-%d}.log"
        content = path.read_text()
        assert "[INFO] jsonhttp: start listen :8080" in content

    def test_switches_file_after_midnight(self, tmp_path):
        sink = FileLogger(str(tmp_path))
        try:
            sink.handler.day = date.today() - timedelta(days=1)
            sink.log(Level.ERROR, "after midnight")
        finally:
            sink.close()

        today = tmp_path / f"{date.today():%Y-%m-%d}.log"
        assert sink.current_file == os.path.abspath(str(today))
        assert "after midnight" in today.read_text()

    def test_does_not_propagate(self, tmp_path, caplog):
        sink = FileLogger(str(tmp_path))
        try:
            with caplog.at_level(logging.DEBUG):
                sink.log(Level.INFO, "file only")
        finally:
            sink.close()

        assert "file only" not in caplog.text


class TestLogError:

    def test_logs_traceback(self, recording_logger):
        try:
            raise ValueError("boom")
        except ValueError as e:
            log_error(recording_logger, e)

        level, values = recording_logger.records[0]
        assert level == Level.ERROR
        assert "ValueError: boom" in values[0]
        assert "Traceback" in values[0]

    def test_none_is_ignored(self, recording_logger):
        log_error(recording_logger, None)
        assert recording_logger.records == []
