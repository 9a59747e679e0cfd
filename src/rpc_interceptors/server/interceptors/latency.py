from __future__ import annotations

import logging
import time
from collections.abc import Callable

from rpc_interceptors.observability.metrics import REQUEST_LATENCY, MetricLabels, MetricsCollector
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall, classify_exit
from rpc_interceptors.types import Outcome

__all__ = ["LatencyInterceptor"]

logger = logging.getLogger(__name__)


class LatencyInterceptor(Interceptor):
    """Records how long everything downstream of this interceptor took.

    The clock is read immediately before and after ``next_call``; label
    construction and the collector update happen outside that window. One
    sample is recorded per call whatever the outcome, cancellations included.

    Args:
        collector: Metrics sink receiving ``rpc.request.latency`` in milliseconds.
        split_by_outcome: Add the ``outcome`` label so success, failure and
            cancellation get separate series.
        clock: Monotonic clock in seconds.
    """

    def __init__(
        self,
        collector: MetricsCollector,
        *,
        split_by_outcome: bool = False,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._collector = collector
        self._split_by_outcome = split_by_outcome
        self._clock = clock

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        outcome: Outcome | None = None
        escaped: BaseException | None = None
        started = self._clock()
        try:
            outcome = await next_call(context)
            return outcome
        except BaseException as exc:
            escaped = exc
            raise
        finally:
            elapsed = self._clock() - started
            self._record(context, elapsed, outcome, escaped)

    def _record(
        self,
        context: CallContext,
        elapsed: float,
        outcome: Outcome | None,
        escaped: BaseException | None,
    ) -> None:
        duration_ms = elapsed * 1000.0
        context.store("latency_ms", duration_ms)
        labels = MetricLabels(method=context.method)
        if self._split_by_outcome:
            kind, _ = classify_exit(outcome, escaped)
            labels = MetricLabels(method=context.method, outcome=kind.value)
        try:
            self._collector.record_latency(REQUEST_LATENCY, labels, duration_ms)
        except Exception:
            logger.exception("Failed to record latency for %s", context.method)
