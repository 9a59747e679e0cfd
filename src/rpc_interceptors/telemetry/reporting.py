from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from rpc_interceptors.observability.reporting import ErrorReporter

__all__ = ["OTelErrorReporter"]

logger = logging.getLogger(__name__)


class OTelErrorReporter(ErrorReporter):
    """Attaches error reports to the active OpenTelemetry span.

    The exception (when present) is recorded on the span together with the
    method and forwarded metadata; otherwise an ``rpc.error`` event is added.
    The span status is set to ERROR. Reports arriving without a recording span
    are dropped.

    Must run on the calling task, so it cannot sit behind
    :class:`~rpc_interceptors.observability.reporting.QueueingErrorReporter`.
    """

    def __init__(self) -> None:
        try:
            from opentelemetry import trace
            from opentelemetry.trace import Status, StatusCode
        except ImportError:
            logger.error("Please install the 'rpc-interceptors[telemetry]' extras to enable telemetry features.")
            self._trace = None
            return
        self._trace = trace
        self._status = Status
        self._status_code = StatusCode

    def report(
        self,
        error_kind: str,
        message: str,
        method: str,
        metadata: Mapping[str, Any],
        *,
        cause: BaseException | None = None,
    ) -> None:
        if self._trace is None:
            return
        span = self._trace.get_current_span()
        if not span.is_recording():
            return

        attributes: dict[str, Any] = {
            "rpc.method": method,
            "error.kind": error_kind,
            "error.message": message,
        }
        for key, value in metadata.items():
            if isinstance(value, (str, bool, int, float)):
                attributes[f"rpc.metadata.{key}"] = value

        if cause is not None:
            span.record_exception(cause, attributes=attributes)
        else:
            span.add_event("rpc.error", attributes=attributes)
        span.set_status(self._status(self._status_code.ERROR, f"{error_kind}: {message}"))
