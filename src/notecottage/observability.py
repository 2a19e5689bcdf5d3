"""Logging setup and lightweight operation metrics.

File logs rotate under ``log_dir`` (``~/.notecottage/logs`` by default).
Operations wrapped in ``timed_operation`` are counted in the process-wide
``metrics`` collector, which the CLI dumps at DEBUG on exit.
"""
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "notecottage"
DEFAULT_LOG_DIR = Path.home() / ".notecottage" / "logs"
LOG_FILE_NAME = "notecottage.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _writes_to(handler: logging.Handler, log_file: Path) -> bool:
    return isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file


def _is_console(handler: logging.Handler) -> bool:
    return type(handler) is logging.StreamHandler


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    console: bool = True,
) -> Path:
    """Attach a rotating file handler (and a console handler) to the package logger.

    Repeated calls with the same directory reuse the existing handlers.

    Returns:
        The log directory in use.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = (log_path / LOG_FILE_NAME).resolve()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    existing = package_logger.handlers

    new_handlers = []
    if not any(_writes_to(h, log_file) for h in existing):
        new_handlers.append(RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        ))
    if console and not any(_is_console(h) for h in existing):
        new_handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in new_handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.debug(f"Logging to {log_file}")
    return log_path


@dataclass
class OperationMetrics:
    """Metrics for a single operation type."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Thread-safe in-process metrics for core operations."""

    def __init__(self):
        self._lock = Lock()
        self._operations: Dict[str, OperationMetrics] = {}

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Record one completed operation."""
        with self._lock:
            m = self._operations.setdefault(operation, OperationMetrics())
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if success:
                m.success_count += 1
            else:
                m.error_count += 1
                m.last_error = error
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Return a snapshot keyed by operation name."""
        with self._lock:
            snapshot = {}
            for name, m in self._operations.items():
                data = asdict(m)
                data["avg_duration_ms"] = m.total_duration_ms / m.count if m.count else 0.0
                snapshot[name] = data
            return snapshot

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block and record it in ``metrics``.

    Yields a dict holding a short ``correlation_id``; anything the caller
    adds to it is included in the closing DEBUG line.
    """
    info: Dict[str, Any] = {"correlation_id": uuid.uuid4().hex[:8]}
    tag = info["correlation_id"]
    logger.debug(f"[{tag}] {operation} started {context}")
    started = time.perf_counter()
    try:
        yield info
    except Exception as e:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, False, str(e))
        logger.debug(f"[{tag}] {operation} failed after {elapsed_ms:.2f}ms: {e}")
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    metrics.record_operation(operation, elapsed_ms, True)
    details = {k: v for k, v in info.items() if k != "correlation_id"}
    logger.debug(f"[{tag}] {operation} took {elapsed_ms:.2f}ms {details}")
