"""
Tests for the audit log and console logging setup.
"""

import json
import logging

from jamf_provisioner.audit_log import audit, audit_section, close_audit_log, open_audit_log
from jamf_provisioner.logging_config import LOGGER_NAME, JSONFormatter, configure_logging


class TestAuditLog:
    """Tests for the operator-facing audit file."""

    def test_banner_and_lines(self, tmp_path):
        path = tmp_path / "logs" / "audit.txt"
        handler = open_audit_log(path)
        try:
            audit("Creating %s...", "script")
        finally:
            close_audit_log(handler)

        text = path.read_text()
        assert "# JAMF PROVISIONER #" in text
        assert text.rstrip().endswith("Creating script...")

    def test_new_run_truncates(self, tmp_path):
        path = tmp_path / "audit.txt"
        path.write_text("stale line\n")

        handler = open_audit_log(path)
        close_audit_log(handler)

        assert "stale line" not in path.read_text()

    def test_append_mode_keeps_history(self, tmp_path):
        path = tmp_path / "audit.txt"
        path.write_text("earlier run\n")

        handler = open_audit_log(path, title="TEARDOWN", mode="a")
        audit("hello")
        close_audit_log(handler)

        text = path.read_text()
        assert text.startswith("earlier run\n")
        assert "# TEARDOWN #" in text

    def test_lines_flushed_immediately(self, audit_path):
        audit("first")
        assert "first" in audit_path.read_text()

    def test_section(self, audit_path):
        audit_section("ROLLING BACK")
        assert "# ROLLING BACK #" in audit_path.read_text()

    def test_closed_handler_stops_writing(self, tmp_path):
        path = tmp_path / "audit.txt"
        handler = open_audit_log(path)
        close_audit_log(handler)

        audit("after close")

        assert "after close" not in path.read_text()

    def test_close_none(self):
        close_audit_log(None)

    def test_audit_lines_not_echoed_to_console(self, audit_path, caplog):
        configure_logging("INFO", "text")

        with caplog.at_level(logging.INFO):
            audit("file only")

        assert "file only" in audit_path.read_text()
        assert "file only" not in caplog.text


class TestConsoleLogging:
    """Tests for configure_logging and JSONFormatter."""

    def test_json_formatter(self):
        record = logging.LogRecord("jamf_provisioner.pipeline", logging.INFO, __file__, 10, "hi %s", ("x",), None)
        record.run_id = "prov-1234abcd"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hi x"
        assert entry["level"] == "INFO"
        assert entry["run_id"] == "prov-1234abcd"
        assert entry["timestamp"].endswith("Z")

    def test_json_formatter_resource_fields(self):
        record = logging.LogRecord("jamf_provisioner.rollback", logging.ERROR, __file__, 10, "failed", (), None)
        record.run_id = None
        record.resource_type = "policies"
        record.resource_id = 107

        entry = json.loads(JSONFormatter().format(record))

        assert "run_id" not in entry
        assert entry["resource_type"] == "policies"
        assert entry["resource_id"] == 107

    def test_configure_replaces_console_handler(self):
        logger = configure_logging("INFO", "json")
        configure_logging("DEBUG", "text")

        consoles = [h for h in logger.handlers if getattr(h, "_provisioner_console", False)]
        assert len(consoles) == 1
        assert consoles[0].level == logging.DEBUG
        assert logger.name == LOGGER_NAME

    def test_audit_handler_survives_configure(self, audit_path):
        configure_logging("WARNING", "text")
        audit("still here")
        assert "still here" in audit_path.read_text()
