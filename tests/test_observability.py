"""Tests for logging configuration and operation metrics."""
import logging
from logging.handlers import RotatingFileHandler

import pytest

from notecottage.observability import (
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
)


@pytest.fixture
def clean_logger():
    """Remove handlers added to the package logger during a test."""
    package_logger = logging.getLogger("notecottage")
    before = list(package_logger.handlers)
    yield package_logger
    for handler in package_logger.handlers[:]:
        if handler not in before:
            handler.close()
            package_logger.removeHandler(handler)


class TestMetricsCollector:
    def test_records_success_and_error(self):
        collector = MetricsCollector()
        collector.record_operation("op", 10.0, True)
        collector.record_operation("op", 30.0, False, error="boom")

        data = collector.get_metrics()["op"]
        assert data["count"] == 2
        assert data["success_count"] == 1
        assert data["error_count"] == 1
        assert data["max_duration_ms"] == 30.0
        assert data["avg_duration_ms"] == 20.0
        assert data["last_error"] == "boom"

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("op", 1.0, True)
        collector.reset()
        assert collector.get_metrics() == {}


class TestTimedOperation:
    def test_success_recorded(self):
        metrics.reset()
        with timed_operation("unit_op", key="value") as op:
            op["result_count"] = 3
            assert len(op["correlation_id"]) == 8
        assert metrics.get_metrics()["unit_op"]["success_count"] == 1

    def test_error_recorded_and_reraised(self):
        metrics.reset()
        with pytest.raises(RuntimeError):
            with timed_operation("failing_op"):
                raise RuntimeError("nope")
        data = metrics.get_metrics()["failing_op"]
        assert data["error_count"] == 1
        assert data["last_error"] == "nope"

    def test_note_create_is_timed(self, note_repository):
        metrics.reset()
        note_repository.create("Timed", "content")
        assert metrics.get_metrics()["note_create"]["count"] == 1


class TestConfigureLogging:
    def test_creates_rotating_file(self, temp_dir, clean_logger):
        log_dir = configure_logging(log_dir=temp_dir / "logs", console=False)
        assert (log_dir / "notecottage.log").exists()
        rotating = [h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(rotating) == 1

    def test_idempotent(self, temp_dir, clean_logger):
        configure_logging(log_dir=temp_dir / "logs", console=False)
        configure_logging(log_dir=temp_dir / "logs", console=False)
        rotating = [h for h in clean_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(rotating) == 1
