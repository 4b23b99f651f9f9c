"""
Observability module for the identity store.

Provides:
- Structured logging with JSON format and correlation IDs
- Correlation ID generation and propagation through context variables
- Prometheus metrics for repository queries

Usage:
    from identity_store.core.observability import (
        configure_structured_logging,
        db_metrics,
        set_correlation_id,
    )
"""

import json
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from identity_store.core.errors import QueryCancelledError

# ============================================================================
# Context Variables
# ============================================================================

# Correlation ID - links all logs emitted on behalf of one caller request
_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Generate a unique correlation ID."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get the current correlation ID from context."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    """Set the correlation ID for the current context."""
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - request_id: Correlation ID (if available)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        # Fields passed through logger.info("msg", extra={"key": "value"})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO") -> None:
    """
    Configure root logger with structured JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with the host's metrics
_registry = CollectorRegistry()


class Metrics:
    """Centralized metrics for identity store queries."""

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # Query count by repository operation and outcome
        self.identity_queries_total = Counter(
            "identity_queries_total",
            "Total identity store queries",
            ["operation", "status"],
            registry=self.registry,
        )

        # Query latency histogram
        self.identity_query_duration_seconds = Histogram(
            "identity_query_duration_seconds",
            "Identity store query duration in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


# ============================================================================
# Database Metrics Helper
# ============================================================================


class DBMetricsWrapper:
    """
    Wrapper to track repository query metrics.

    Usage in repos:
        with db_metrics.track("find_by_login"):
            result = await db.execute(stmt)
    """

    def __init__(self, metrics_instance: Metrics | None = None) -> None:
        self.metrics = metrics_instance or metrics

    @contextmanager
    def track(self, operation: str) -> Iterator[None]:
        """
        Track timing and outcome of a repository operation.

        Args:
            operation: Name of the operation (e.g., "get_list", "find_by_login")
        """
        start = time.perf_counter()
        status = "success"
        try:
            yield
        except QueryCancelledError:
            status = "cancelled"
            raise
        except Exception:
            status = "error"
            raise
        finally:
            duration = time.perf_counter() - start
            self.metrics.identity_query_duration_seconds.labels(operation=operation).observe(
                duration
            )
            self.metrics.identity_queries_total.labels(operation=operation, status=status).inc()


# Global DB metrics wrapper
db_metrics = DBMetricsWrapper()


def render_metrics() -> bytes:
    """Return all identity store metrics in Prometheus text format."""
    return generate_latest(_registry)

