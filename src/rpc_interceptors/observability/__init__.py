from __future__ import annotations

from rpc_interceptors.observability.logging import (
    LOG_FORMAT_CONSOLE,
    LOG_FORMAT_ENV,
    LOG_FORMAT_JSON,
    LogContext,
    StructuredConsoleFormatter,
    StructuredJSONFormatter,
    configure_logging,
    get_logger,
)
from rpc_interceptors.observability.metrics import (
    REQUEST_LATENCY,
    REQUESTS_COMPLETED,
    REQUESTS_RECEIVED,
    InMemoryMetricsCollector,
    MetricLabels,
    MetricsCollector,
    NullMetricsCollector,
)
from rpc_interceptors.observability.reporting import (
    ErrorReport,
    ErrorReporter,
    LoggingErrorReporter,
    NullErrorReporter,
    QueueingErrorReporter,
)

__all__ = [
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
    "REQUEST_LATENCY",
    "REQUESTS_COMPLETED",
    "REQUESTS_RECEIVED",
    "InMemoryMetricsCollector",
    "MetricLabels",
    "MetricsCollector",
    "NullMetricsCollector",
    "ErrorReport",
    "ErrorReporter",
    "LoggingErrorReporter",
    "NullErrorReporter",
    "QueueingErrorReporter",
]
