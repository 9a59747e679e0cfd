"""Builds collectors, reporters and the interceptor chain from ChainConfig."""

from __future__ import annotations

import logging
from collections.abc import Callable

from rpc_interceptors.config.models import ChainConfig, MetricsConfig, ReporterConfig
from rpc_interceptors.exceptions import ConfigurationError
from rpc_interceptors.observability.metrics import (
    InMemoryMetricsCollector,
    MetricsCollector,
    NullMetricsCollector,
)
from rpc_interceptors.observability.reporting import (
    ErrorReporter,
    LoggingErrorReporter,
    NullErrorReporter,
    QueueingErrorReporter,
)
from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.interceptors.base import Interceptor
from rpc_interceptors.server.interceptors.counting import RequestCountInterceptor
from rpc_interceptors.server.interceptors.error_logging import ErrorLoggingInterceptor
from rpc_interceptors.server.interceptors.latency import LatencyInterceptor
from rpc_interceptors.server.interceptors.log_context import LogContextInterceptor
from rpc_interceptors.server.interceptors.telemetry import OTelServerInterceptor
from rpc_interceptors.telemetry.metrics import OTelMetricsCollector
from rpc_interceptors.telemetry.reporting import OTelErrorReporter

__all__ = [
    "InterceptorFactory",
    "build_chain",
    "build_collector",
    "build_reporter",
    "register_interceptor",
]

logger = logging.getLogger(__name__)

InterceptorFactory = Callable[[ChainConfig, MetricsCollector, ErrorReporter], Interceptor]

_FACTORIES: dict[str, InterceptorFactory] = {
    "log_context": lambda config, collector, reporter: LogContextInterceptor(),
    "request_count": lambda config, collector, reporter: RequestCountInterceptor(collector),
    "latency": lambda config, collector, reporter: LatencyInterceptor(
        collector, split_by_outcome=config.latency.split_by_outcome
    ),
    "error_logging": lambda config, collector, reporter: ErrorLoggingInterceptor(
        reporter,
        metadata_keys=config.error_logging.metadata_keys,
        report_cancellations=config.error_logging.report_cancellations,
    ),
    "otel": lambda config, collector, reporter: OTelServerInterceptor(),
}


def register_interceptor(name: str, factory: InterceptorFactory) -> None:
    """Make a custom interceptor available to ``interceptors:`` in config files.

    Raises:
        ConfigurationError: If ``name`` is already registered.
    """
    if name in _FACTORIES:
        raise ConfigurationError(message=f"Interceptor factory {name!r} already registered")
    _FACTORIES[name] = factory


def build_collector(config: MetricsConfig) -> MetricsCollector:
    if config.backend == "otel":
        return OTelMetricsCollector()
    if config.backend == "none":
        return NullMetricsCollector()
    return InMemoryMetricsCollector()


def build_reporter(config: ReporterConfig) -> ErrorReporter:
    if config.backend == "none":
        return NullErrorReporter()
    if config.backend == "otel":
        return OTelErrorReporter()
    reporter: ErrorReporter = LoggingErrorReporter()
    if config.queue_size > 0:
        reporter = QueueingErrorReporter(reporter, maxsize=config.queue_size)
    return reporter


def build_chain(
    config: ChainConfig,
    collector: MetricsCollector,
    reporter: ErrorReporter,
) -> InterceptorChain:
    """Instantiate ``config.interceptors`` in the configured order.

    Raises:
        ConfigurationError: On unknown names or an invalid resulting chain.
    """
    interceptors: list[Interceptor] = []
    for name in config.interceptors:
        factory = _FACTORIES.get(name)
        if factory is None:
            raise ConfigurationError(
                message=f"Unknown interceptor {name!r}; known: {sorted(_FACTORIES)}"
            )
        interceptors.append(factory(config, collector, reporter))
    logger.info("Configured interceptor order: %s", " -> ".join(config.interceptors) or "<empty>")
    return InterceptorChain(interceptors)
