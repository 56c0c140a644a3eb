"""
Tests for app.core.logging: formatters, the audit filter and file setup.
"""
import json
import sys
import logging

import pytest

from app.core.logging import (
    AuditLogFilter,
    JSONFormatter,
    get_task_logger,
    setup_logging,
)


def _record(message, level=logging.INFO, name="app.test"):
    return logging.LogRecord(name, level, __file__, 10, message, None, None)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:

    def test_one_object_per_record(self):
        line = JSONFormatter().format(_record("Config 'site_name' updated by user 1"))
        data = json.loads(line)

        assert data["level"] == "INFO"
        assert data["logger"] == "app.test"
        assert data["message"] == "Config 'site_name' updated by user 1"
        assert data["timestamp"].endswith("Z")

    def test_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("app.test", logging.ERROR, __file__, 10, "failed", None, sys.exc_info())

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestAuditLogFilter:

    @pytest.mark.parametrize("message", [
        "Issued login verification code for a@b.com",
        "Config 'maintenance_mode' deactivated by user 3",
        "Invalid 2FA code",
    ])
    def test_security_records_pass(self, message):
        assert AuditLogFilter().filter(_record(message)) is True

    def test_other_records_dropped(self):
        assert AuditLogFilter().filter(_record("Purged 3 rows from cache")) is False


class TestSetupLogging:

    def test_writes_log_files(self, tmp_path, restore_root_logger):
        setup_logging(level="DEBUG", log_to_file=True, log_to_console=False, log_dir=str(tmp_path / "logs"))

        logger = logging.getLogger("app.services.system_config_service")
        logger.info("Config 'site_name' updated by user 1")
        logger.info("Nothing to audit here")
        logger.error("Failed to send 2FA verification email")
        for handler in restore_root_logger.handlers:
            handler.flush()

        main_log = (tmp_path / "logs" / "alpuslinks.log").read_text()
        audit_log = (tmp_path / "logs" / "audit.log").read_text()
        error_log = (tmp_path / "logs" / "error.log").read_text()

        assert "Nothing to audit here" in main_log
        assert "Config 'site_name' updated" in audit_log
        assert "Nothing to audit here" not in audit_log
        assert "Failed to send 2FA" in error_log
        assert "Config 'site_name'" not in error_log

    def test_console_only(self, tmp_path, restore_root_logger):
        setup_logging(level="warning", log_to_file=False, log_dir=str(tmp_path / "logs"))

        assert restore_root_logger.level == logging.WARNING
        assert len(restore_root_logger.handlers) == 1
        assert not (tmp_path / "logs").exists()


class TestTaskLogger:

    def test_prefixes_task_id(self, caplog):
        with caplog.at_level(logging.INFO, logger="task.purge"):
            get_task_logger("purge", "abc-123").info("Purged 2 expired verification codes")
            get_task_logger("purge").info("no id")

        assert caplog.records[0].getMessage() == "[abc-123] Purged 2 expired verification codes"
        assert caplog.records[0].name == "task.purge"
        assert caplog.records[1].getMessage() == "no id"
