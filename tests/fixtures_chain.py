from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rpc_interceptors.exceptions import ReportingError
from rpc_interceptors.observability.metrics import InMemoryMetricsCollector, MetricLabels
from rpc_interceptors.observability.reporting import ErrorReport, ErrorReporter
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall
from rpc_interceptors.types import Outcome


class FakeClock:
    """Controllable clock for deterministic latency tests."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += float(seconds)


class RecordingReporter(ErrorReporter):
    """Keeps every report; optionally appends to a shared event log."""

    def __init__(self, events: list[tuple[str, str]] | None = None) -> None:
        self.reports: list[ErrorReport] = []
        self._events = events

    def report(
        self,
        error_kind: str,
        message: str,
        method: str,
        metadata: Mapping[str, Any],
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.reports.append(
            ErrorReport(error_kind=error_kind, message=message, method=method, metadata=dict(metadata), cause=cause)
        )
        if self._events is not None:
            self._events.append(("report", error_kind))


class BrokenReporter(ErrorReporter):
    def __init__(self) -> None:
        self.calls = 0

    def report(self, error_kind, message, method, metadata, *, cause=None) -> None:
        self.calls += 1
        raise ReportingError(message="sink offline")


class RecordingCollector(InMemoryMetricsCollector):
    """In-memory collector that also logs the order of updates."""

    def __init__(self, events: list[tuple[str, str]]) -> None:
        super().__init__()
        self._events = events

    def increment_counter(self, name: str, labels: MetricLabels, value: float = 1.0) -> None:
        self._events.append(("counter", name))
        super().increment_counter(name, labels, value)

    def record_latency(self, name: str, labels: MetricLabels, duration_ms: float) -> None:
        self._events.append(("latency", name))
        super().record_latency(name, labels, duration_ms)


class RecordingInterceptor(Interceptor):
    """Logs ``(name, "before")`` and ``(name, "after")`` around next_call."""

    def __init__(self, label: str, events: list[tuple[str, str]]) -> None:
        self._label = label
        self._events = events

    @property
    def name(self) -> str:
        return self._label

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        self._events.append((self._label, "before"))
        try:
            return await next_call(context)
        finally:
            self._events.append((self._label, "after"))
