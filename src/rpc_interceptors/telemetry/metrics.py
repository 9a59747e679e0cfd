from __future__ import annotations

import logging
import threading
from typing import Any

from rpc_interceptors.observability.metrics import REQUEST_LATENCY, MetricLabels, MetricsCollector

__all__ = ["OTelMetricsCollector"]

logger = logging.getLogger(__name__)

_DESCRIPTIONS = {
    "rpc.requests.received": "Number of RPC requests received",
    "rpc.requests.completed": "Number of RPC requests completed, by outcome",
    REQUEST_LATENCY: "RPC handler latency in milliseconds",
}


class OTelMetricsCollector(MetricsCollector):
    """Metrics collector backed by an OpenTelemetry meter.

    Counters map to OTel counters and latency to histograms with unit ``ms``.
    Label sets become attributes (``rpc.method``, ``rpc.outcome``,
    ``error.kind``). Degrades to a no-op when OpenTelemetry isn't installed.

    Args:
        meter_provider: Provider to take the meter from; the global provider
            when omitted. Only an explicit provider is flushed on shutdown.
        meter_name: Instrumentation scope name.
    """

    def __init__(self, meter_provider: Any | None = None, *, meter_name: str = "rpc_interceptors") -> None:
        self._meter_provider = meter_provider
        self._instruments: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._meter: Any = None
        self._disabled = False

        try:
            from opentelemetry import metrics
        except ImportError:
            logger.error("Please install the 'rpc-interceptors[telemetry]' extras to enable telemetry features.")
            self._disabled = True
            return

        if meter_provider is not None:
            self._meter = meter_provider.get_meter(meter_name)
        else:
            self._meter = metrics.get_meter(meter_name)

    @property
    def enabled(self) -> bool:
        return not self._disabled

    def increment_counter(self, name: str, labels: MetricLabels, value: float = 1.0) -> None:
        if self._disabled:
            return
        counter = self._instrument(name, "counter")
        counter.add(int(value) if float(value).is_integer() else value, labels.as_attributes())

    def record_latency(self, name: str, labels: MetricLabels, duration_ms: float) -> None:
        if self._disabled:
            return
        histogram = self._instrument(name, "histogram")
        histogram.record(duration_ms, labels.as_attributes())

    def shutdown(self) -> None:
        if self._disabled or self._meter_provider is None:
            return
        force_flush = getattr(self._meter_provider, "force_flush", None)
        if force_flush is None:
            return
        try:
            force_flush()
        except Exception:
            logger.exception("Failed to flush OpenTelemetry metrics")

    def _instrument(self, name: str, kind: str) -> Any:
        instrument = self._instruments.get(name)
        if instrument is not None:
            return instrument
        with self._lock:
            instrument = self._instruments.get(name)
            if instrument is None:
                description = _DESCRIPTIONS.get(name, name)
                if kind == "histogram":
                    instrument = self._meter.create_histogram(name, unit="ms", description=description)
                else:
                    instrument = self._meter.create_counter(name, description=description)
                self._instruments[name] = instrument
            return instrument
