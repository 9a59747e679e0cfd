from __future__ import annotations

import logging
from typing import Any

from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall
from rpc_interceptors.types import Failure, Outcome

__all__ = ["OTelServerInterceptor"]

logger = logging.getLogger(__name__)


class OTelServerInterceptor(Interceptor):
    """Opens a server span per call.

    Integrates with:
    - W3C ``traceparent``/``tracestate`` from the call metadata via
      ``opentelemetry.propagate.extract``
    - the call's method name and request id as span attributes

    The span is current while downstream runs, so an
    :class:`~rpc_interceptors.telemetry.reporting.OTelErrorReporter` used by an
    inner error-logging interceptor annotates this span.

    Note:
    - Safe when OpenTelemetry isn't installed: the call passes straight through.
    """

    def __init__(self, tracer_provider: Any | None = None, *, tracer_name: str = "rpc_interceptors") -> None:
        try:
            from opentelemetry import trace
            from opentelemetry.propagate import extract
            from opentelemetry.trace import SpanKind, Status, StatusCode
        except ImportError:
            logger.error("Please install the 'rpc-interceptors[telemetry]' extras to enable telemetry features.")
            self._tracer = None
            return

        self._extract = extract
        self._span_kind = SpanKind.SERVER
        self._status = Status
        self._status_code = StatusCode
        if tracer_provider is not None:
            self._tracer = tracer_provider.get_tracer(tracer_name)
        else:
            self._tracer = trace.get_tracer(tracer_name)

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        if self._tracer is None:
            return await next_call(context)

        carrier = {key: value for key, value in context.metadata.items() if isinstance(value, str)}
        parent = self._extract(carrier)
        attributes = {
            "rpc.system": "rpc_interceptors",
            "rpc.method": context.method,
            "rpc.request_id": context.request_id,
        }

        with self._tracer.start_as_current_span(
            f"rpc {context.method}",
            context=parent,
            kind=self._span_kind,
            attributes=attributes,
        ) as span:
            outcome = await next_call(context)
            span.set_attribute("rpc.outcome", outcome.kind.value)
            if isinstance(outcome, Failure):
                span.set_attribute("error.kind", outcome.error_kind)
                span.set_status(self._status(self._status_code.ERROR, outcome.message))
            else:
                span.set_status(self._status(self._status_code.OK))
            return outcome
