"""OpenTelemetry backends for the interceptor chain.

Install with:
    rpc-interceptors[telemetry]

Safe to import without OpenTelemetry; the classes degrade to no-ops and log
an error on construction.
"""

from .metrics import OTelMetricsCollector
from .reporting import OTelErrorReporter

__all__ = [
    "OTelMetricsCollector",
    "OTelErrorReporter",
]
