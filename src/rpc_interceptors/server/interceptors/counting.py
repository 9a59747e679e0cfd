from __future__ import annotations

import logging

from rpc_interceptors.observability.metrics import (
    REQUESTS_COMPLETED,
    REQUESTS_RECEIVED,
    MetricLabels,
    MetricsCollector,
)
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall, classify_exit
from rpc_interceptors.types import Outcome

__all__ = ["RequestCountInterceptor"]

logger = logging.getLogger(__name__)


class RequestCountInterceptor(Interceptor):
    """Counts received and completed requests per method.

    ``rpc.requests.received{method}`` is incremented before the call and
    ``rpc.requests.completed{method, outcome, error_kind}`` exactly once after
    it, on every exit path: normal return, failure outcome, an exception
    escaping ``next_call``, or task cancellation.

    Collector errors are logged and never change the call's outcome.
    """

    def __init__(self, collector: MetricsCollector) -> None:
        self._collector = collector

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        method = context.method
        self._increment(REQUESTS_RECEIVED, MetricLabels(method=method))

        outcome: Outcome | None = None
        escaped: BaseException | None = None
        try:
            outcome = await next_call(context)
            return outcome
        except BaseException as exc:
            escaped = exc
            raise
        finally:
            kind, error_kind = classify_exit(outcome, escaped)
            self._increment(
                REQUESTS_COMPLETED,
                MetricLabels(method=method, outcome=kind.value, error_kind=error_kind),
            )

    def _increment(self, name: str, labels: MetricLabels) -> None:
        try:
            self._collector.increment_counter(name, labels)
        except Exception:
            logger.exception("Failed to increment %s for %s", name, labels.method)
