"""Logging setup and per-operation metrics for Juan Note.

Log records from the ``juan_note`` package go to a size-rotated file (and
optionally stderr). Service, HTTP and MCP operations are timed through
``timed_operation`` and aggregated by the process-wide ``metrics`` collector,
which ``/health`` reports and ``main`` persists on shutdown.
"""
import json
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".juan-note" / "logs"
LOG_FILE_NAME = "juan-note.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _has_handler(target: logging.Logger, log_file: Path) -> bool:
    for handler in target.handlers:
        if isinstance(handler, RotatingFileHandler):
            if Path(handler.baseFilename) == log_file.resolve():
                return True
    return False


def _has_console(target: logging.Logger) -> bool:
    return any(
        type(handler) is logging.StreamHandler for handler in target.handlers
    )


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Attach a rotating file handler to the ``juan_note`` logger.

    Calling this again with the same directory does not add duplicate
    handlers, so the HTTP and MCP entry points can both call it.

    Args:
        log_dir: Directory for ``juan-note.log``. Defaults to ~/.juan-note/logs/
        level: Level for the package logger and its handlers.
        max_bytes: Size at which the file rotates.
        backup_count: Rotated files kept.
        console: Also log to stderr.

    Returns:
        The log directory in use.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / LOG_FILE_NAME

    package_logger = logging.getLogger("juan_note")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if not _has_handler(package_logger, log_file):
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if console and not _has_console(package_logger):
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        package_logger.addHandler(stream_handler)

    package_logger.info(f"Logging to {log_file} (rotate at {max_bytes} bytes, keep {backup_count})")
    return log_path


@dataclass
class OperationStats:
    """Running totals for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def add(self, duration_ms: float, error: Optional[str]) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        if error is None:
            self.success_count += 1
        else:
            self.error_count += 1
            self.last_error = error
            self.last_error_at = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / self.count if self.count else 0,
            "avg_duration_ms": round(self.total_ms / self.count, 2) if self.count else 0,
            "min_duration_ms": round(self.min_ms or 0, 2),
            "max_duration_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_time": (
                self.last_error_at.isoformat() if self.last_error_at else None
            ),
        }


class MetricsCollector:
    """Thread-safe aggregation of operation timings.

    Metrics live in memory. Once a metrics file is set they are also
    written out as JSON every ``auto_save_interval`` operations and on
    ``save_metrics``; the write goes through a temp file and a rename.
    """

    def __init__(
        self,
        metrics_file: Optional[Union[str, Path]] = None,
        auto_save_interval: int = 100,
    ):
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()
        self._started_at = datetime.now(timezone.utc)
        self._metrics_file = Path(metrics_file) if metrics_file else None
        self._auto_save_interval = auto_save_interval
        self._unsaved = 0

    def set_metrics_file(self, metrics_file: Union[str, Path]) -> None:
        with self._lock:
            self._metrics_file = Path(metrics_file)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Add one timed call of ``operation``."""
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.add(duration_ms, None if success else (error or "unknown error"))
            self._unsaved += 1
            if (
                self._metrics_file is not None
                and self._auto_save_interval > 0
                and self._unsaved >= self._auto_save_interval
            ):
                self._write()

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation statistics keyed by operation name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation, as reported by ``/health``."""
        with self._lock:
            total = sum(s.count for s in self._stats.values())
            succeeded = sum(s.success_count for s in self._stats.values())
            return {
                "uptime_seconds": (
                    datetime.now(timezone.utc) - self._started_at
                ).total_seconds(),
                "total_operations": total,
                "total_success": succeeded,
                "total_errors": total - succeeded,
                "overall_success_rate": succeeded / total if total else 1.0,
                "operations_tracked": sorted(self._stats),
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._started_at = datetime.now(timezone.utc)
            self._unsaved = 0

    def _write(self) -> bool:
        # Caller holds self._lock
        if self._metrics_file is None:
            return False
        payload = {
            "start_time": self._started_at.isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": {name: stats.as_dict() for name, stats in self._stats.items()},
        }
        temp_file = self._metrics_file.with_suffix(".tmp")
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            temp_file.replace(self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        self._unsaved = 0
        return True

    def save_metrics(self) -> bool:
        """Write metrics now. False if no file is set or the write failed."""
        with self._lock:
            return self._write()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time a block and record it under ``operation``.

    The yielded dict carries a short correlation id; anything the block
    stores in it is appended to the closing debug line. An exception
    raised by the block is recorded as a failure and re-raised.

    Example:
        with timed_operation("search_notes", query=query) as op:
            notes = repository.search(query)
            op["result_count"] = len(notes)
    """
    correlation_id = uuid.uuid4().hex[:8]
    info: Dict[str, Any] = {"correlation_id": correlation_id}
    described = ", ".join(f"{key}={value}" for key, value in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({described})")

    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield info
    except Exception as e:
        error = str(e) or type(e).__name__
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        extras = ", ".join(
            f"{key}={value}" for key, value in info.items() if key != "correlation_id"
        )
        outcome = "OK" if error is None else f"ERROR: {error}"
        logger.debug(
            f"[{correlation_id}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] {extras}"
        )
