"""Tests for logging configuration and operation metrics."""
import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from juan_note.observability import (
    LOG_FILE_NAME,
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    @pytest.fixture
    def collector(self, tmp_path):
        return MetricsCollector(metrics_file=tmp_path / "metrics.json", auto_save_interval=0)

    def test_successful_operation(self, collector):
        collector.record_operation("create_note", 12.5, True)
        stats = collector.get_metrics()["create_note"]
        assert stats["count"] == 1
        assert stats["success_count"] == 1
        assert stats["error_count"] == 0
        assert stats["avg_duration_ms"] == 12.5
        assert stats["last_error"] is None

    def test_failed_operation(self, collector):
        collector.record_operation("create_note", 3.0, False, "Failed to create note")
        stats = collector.get_metrics()["create_note"]
        assert stats["error_count"] == 1
        assert stats["last_error"] == "Failed to create note"
        assert stats["last_error_time"] is not None

    def test_aggregation(self, collector):
        for duration in (10.0, 20.0, 30.0):
            collector.record_operation("search_notes", duration, True)
        stats = collector.get_metrics()["search_notes"]
        assert stats["count"] == 3
        assert stats["avg_duration_ms"] == 20.0
        assert stats["min_duration_ms"] == 10.0
        assert stats["max_duration_ms"] == 30.0

    def test_summary(self, collector):
        summary = collector.get_summary()
        assert summary["total_operations"] == 0
        assert summary["overall_success_rate"] == 1.0

        collector.record_operation("get_note", 1.0, True)
        collector.record_operation("delete_note", 1.0, False, "boom")
        summary = collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert summary["overall_success_rate"] == 0.5
        assert summary["operations_tracked"] == ["delete_note", "get_note"]

    def test_save(self, collector, tmp_path):
        collector.record_operation("get_note", 2.0, True)
        assert collector.save_metrics() is True
        data = json.loads((tmp_path / "metrics.json").read_text(encoding="utf-8"))
        assert data["operations"]["get_note"]["count"] == 1
        assert not (tmp_path / "metrics.tmp").exists()

    def test_save_without_file(self):
        assert MetricsCollector().save_metrics() is False

    def test_auto_save(self, tmp_path):
        target = tmp_path / "auto" / "metrics.json"
        collector = MetricsCollector(metrics_file=target, auto_save_interval=2)
        collector.record_operation("a", 1.0, True)
        assert not target.exists()
        collector.record_operation("a", 1.0, True)
        assert target.exists()

    def test_reset(self, collector):
        collector.record_operation("a", 1.0, True)
        collector.reset()
        assert collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for the timed_operation context manager."""

    def test_success_recorded(self):
        with timed_operation("unit_op", note_id=1) as op:
            op["result_count"] = 3
        assert len(op["correlation_id"]) == 8
        assert metrics.get_metrics()["unit_op"]["success_count"] == 1

    def test_failure_recorded_and_reraised(self):
        with pytest.raises(ValueError):
            with timed_operation("unit_op"):
                raise ValueError("bad input")
        stats = metrics.get_metrics()["unit_op"]
        assert stats["error_count"] == 1
        assert stats["last_error"] == "bad input"


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def _restore_handlers(self):
        package_logger = logging.getLogger("juan_note")
        saved_handlers = list(package_logger.handlers)
        saved_level = package_logger.level
        yield
        for handler in package_logger.handlers:
            if handler not in saved_handlers:
                handler.close()
        package_logger.handlers = saved_handlers
        package_logger.setLevel(saved_level)

    def test_writes_log_file(self, tmp_path):
        log_dir = configure_logging(log_dir=tmp_path / "logs", console=False)
        assert log_dir == tmp_path / "logs"
        logging.getLogger("juan_note.tests").info("hello from the test")
        for handler in logging.getLogger("juan_note").handlers:
            handler.flush()
        assert "hello from the test" in (log_dir / LOG_FILE_NAME).read_text(encoding="utf-8")

    def test_no_duplicate_handlers(self, tmp_path):
        configure_logging(log_dir=tmp_path, console=False)
        configure_logging(log_dir=tmp_path, console=False)
        rotating = [
            h for h in logging.getLogger("juan_note").handlers
            if isinstance(h, RotatingFileHandler) and h.baseFilename.startswith(str(tmp_path))
        ]
        assert len(rotating) == 1
