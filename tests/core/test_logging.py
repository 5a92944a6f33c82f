"""Tests for ``rowspine.core.logging``."""

from __future__ import annotations

import structlog

from rowspine.core.logging import (
    _elasticsearch_compatible,
    _service_metadata,
    configure_logging,
    get_logger,
)


class TestProcessors:
    def test_service_metadata(self):
        processor = _service_metadata("booktown")
        assert processor(None, "info", {"event": "x"})["service.name"] == "booktown"

    def test_service_metadata_keeps_existing(self):
        processor = _service_metadata("booktown")
        event = processor(None, "info", {"event": "x", "service.name": "other"})
        assert event["service.name"] == "other"

    def test_elasticsearch_field_names(self):
        event = _elasticsearch_compatible(
            None, "info", {"event": "x", "timestamp": "2024-01-01T00:00:00Z", "level": "info"}
        )
        assert event["@timestamp"] == "2024-01-01T00:00:00Z"
        assert event["log.level"] == "info"
        assert "timestamp" not in event


class TestConfigure:
    def test_configure_json(self):
        try:
            configure_logging(level="DEBUG", json_format=True, service="rowspine-test")
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()

    def test_configure_console(self):
        try:
            configure_logging(level="WARNING", json_format=False, add_timestamp=False)
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()


class TestGetLogger:
    def test_bound_values(self):
        with structlog.testing.capture_logs() as logs:
            get_logger("rowspine.test", backend="sqlite").info("pool_opened", pool_size=5)
        assert logs == [
            {"backend": "sqlite", "pool_size": 5, "event": "pool_opened", "log_level": "info"}
        ]
