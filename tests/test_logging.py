"""
Tests for logging setup and contextual records.
"""

import json
import logging

from certwatch.core.logging import (
    JSONFormatter,
    get_contextual_logger,
    setup_logging,
)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestContextualLogger:
    def test_binds_context(self):
        handler = ListHandler()
        base = logging.getLogger("certwatch.test_context")
        base.addHandler(handler)
        base.setLevel(logging.INFO)
        try:
            log = get_contextual_logger("test_context", source="csg-zbgg", run_id="abc123")
            log.with_context(state="fetching").info("Fetching", extra={"url": "https://a.cn"})
        finally:
            base.removeHandler(handler)

        record = handler.records[0]
        assert record.source == "csg-zbgg"
        assert record.run_id == "abc123"
        assert record.state == "fetching"
        assert record.url == "https://a.cn"

    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("certwatch.x", logging.WARNING, __file__, 1, "Channel %s failed", ("direct",), None)
        record.source = "csg-zbgg"
        record.channel = "direct"

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Channel direct failed"
        assert data["level"] == "WARNING"
        assert data["source"] == "csg-zbgg"
        assert data["channel"] == "direct"
        assert "run_id" not in data


class TestSetupLogging:
    def test_file_handler_writes_json(self, tmp_path):
        log_file = tmp_path / "logs" / "certwatch.log"
        root = setup_logging(level="WARNING", log_file=log_file, rich_console=False)
        try:
            logging.getLogger("certwatch.test_file").debug("debug line")
            for handler in root.handlers:
                handler.flush()
        finally:
            for handler in list(root.handlers):
                handler.close()
                root.removeHandler(handler)

        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[-1])["message"] == "debug line"
