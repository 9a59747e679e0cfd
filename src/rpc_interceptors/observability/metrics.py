from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

__all__ = [
    "REQUESTS_COMPLETED",
    "REQUESTS_RECEIVED",
    "REQUEST_LATENCY",
    "Counter",
    "Histogram",
    "InMemoryMetricsCollector",
    "MetricLabels",
    "MetricsCollector",
    "NullMetricsCollector",
]

logger = logging.getLogger(__name__)

REQUESTS_RECEIVED = "rpc.requests.received"
REQUESTS_COMPLETED = "rpc.requests.completed"
REQUEST_LATENCY = "rpc.request.latency"

LabelKey = tuple[str, str, str]


@dataclass(frozen=True, slots=True)
class MetricLabels:
    """Label set attached to every metric update.

    ``outcome`` and ``error_kind`` stay empty where they do not apply, e.g. on
    the received counter or on latency samples that are not split by outcome.
    """

    method: str = ""
    outcome: str = ""
    error_kind: str = ""

    @property
    def key(self) -> LabelKey:
        return (self.method, self.outcome, self.error_kind)

    def as_attributes(self) -> dict[str, str]:
        attributes = {"rpc.method": self.method}
        if self.outcome:
            attributes["rpc.outcome"] = self.outcome
        if self.error_kind:
            attributes["error.kind"] = self.error_kind
        return attributes


class MetricsCollector(ABC):
    """Process-wide sink for counters and latency samples.

    Implementations must be safe to call from many concurrent calls; the
    interceptor chain never serializes updates on their behalf. Updates are
    synchronous and must not block on I/O.
    """

    @abstractmethod
    def increment_counter(self, name: str, labels: MetricLabels, value: float = 1.0) -> None:
        raise NotImplementedError

    @abstractmethod
    def record_latency(self, name: str, labels: MetricLabels, duration_ms: float) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        """Flush and release backend resources. Called once at server shutdown."""


class NullMetricsCollector(MetricsCollector):
    def increment_counter(self, name: str, labels: MetricLabels, value: float = 1.0) -> None:
        return None

    def record_latency(self, name: str, labels: MetricLabels, duration_ms: float) -> None:
        return None


class Counter:

    def __init__(self, name: str) -> None:
        self.name = name
        self._values: dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def inc(self, labels: MetricLabels, value: float = 1.0) -> None:
        with self._lock:
            self._values[labels.key] = self._values.get(labels.key, 0.0) + value

    def value(self, labels: MetricLabels) -> float:
        with self._lock:
            return self._values.get(labels.key, 0.0)

    def get(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


class Histogram:

    def __init__(self, name: str) -> None:
        self.name = name
        self._observations: dict[LabelKey, list[float]] = {}
        self._lock = threading.Lock()

    def observe(self, value: float, labels: MetricLabels) -> None:
        with self._lock:
            observations = self._observations.get(labels.key)
            if observations is None:
                observations = []
                self._observations[labels.key] = observations
            observations.append(value)

    def samples(self, labels: MetricLabels) -> list[float]:
        with self._lock:
            return list(self._observations.get(labels.key, []))

    def get(self) -> dict[LabelKey, list[float]]:
        with self._lock:
            return {key: list(values) for key, values in self._observations.items()}

    def get_percentile(self, labels: MetricLabels, percentile: float) -> float:
        observations = self.samples(labels)
        if not observations:
            return 0.0
        observations.sort()
        if percentile < 0:
            percentile = 0.0
        elif percentile > 100:
            percentile = 100.0
        index = int(len(observations) * percentile / 100)
        if index >= len(observations):
            index = len(observations) - 1
        return observations[index]


class InMemoryMetricsCollector(MetricsCollector):
    """Lock-protected in-process aggregation.

    Used as the default backend and by tests to read back what the chain
    recorded. Instruments are created lazily on first update.
    """

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()
        self._closed = False

    def increment_counter(self, name: str, labels: MetricLabels, value: float = 1.0) -> None:
        if self._closed:
            logger.debug("Metrics collector closed; dropping counter %s", name)
            return
        self._counter(name).inc(labels, value)

    def record_latency(self, name: str, labels: MetricLabels, duration_ms: float) -> None:
        if self._closed:
            logger.debug("Metrics collector closed; dropping latency sample %s", name)
            return
        self._histogram(name).observe(duration_ms, labels)

    def shutdown(self) -> None:
        self._closed = True

    def counter_value(
        self,
        name: str,
        *,
        method: str = "",
        outcome: str = "",
        error_kind: str = "",
    ) -> float:
        """Value of one exact label combination (0 if never recorded)."""
        counter = self._counters.get(name)
        if counter is None:
            return 0.0
        return counter.value(MetricLabels(method=method, outcome=outcome, error_kind=error_kind))

    def counter_total(self, name: str, **match: str) -> float:
        """Sum of a counter over every label set matching the given labels."""
        counter = self._counters.get(name)
        if counter is None:
            return 0.0
        total = 0.0
        for (method, outcome, error_kind), value in counter.get().items():
            labels = {"method": method, "outcome": outcome, "error_kind": error_kind}
            if all(labels.get(key) == expected for key, expected in match.items()):
                total += value
        return total

    def latency_samples(self, name: str, *, method: str = "", outcome: str = "") -> list[float]:
        histogram = self._histograms.get(name)
        if histogram is None:
            return []
        return histogram.samples(MetricLabels(method=method, outcome=outcome))

    def latency_percentile(self, name: str, percentile: float, *, method: str = "", outcome: str = "") -> float:
        histogram = self._histograms.get(name)
        if histogram is None:
            return 0.0
        return histogram.get_percentile(MetricLabels(method=method, outcome=outcome), percentile)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            histograms = dict(self._histograms)
        return {
            "counters": {name: counter.get() for name, counter in counters.items()},
            "histograms": {name: histogram.get() for name, histogram in histograms.items()},
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
        self._closed = False

    def _counter(self, name: str) -> Counter:
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(name)
                self._counters[name] = counter
            return counter

    def _histogram(self, name: str) -> Histogram:
        with self._lock:
            histogram = self._histograms.get(name)
            if histogram is None:
                histogram = Histogram(name)
                self._histograms[name] = histogram
            return histogram
