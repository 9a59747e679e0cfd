from __future__ import annotations

import logging

from rpc_interceptors.observability.logging import LogContext
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall
from rpc_interceptors.server.metadata import trace_id_from_metadata
from rpc_interceptors.types import Outcome

__all__ = ["LogContextInterceptor"]

logger = logging.getLogger(__name__)


class LogContextInterceptor(Interceptor):
    """Binds method, trace id and request id to the logging context.

    Place it outermost so records emitted by every other interceptor and by
    the handler carry the call's identifiers.
    """

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        trace_id = trace_id_from_metadata(context.metadata)
        if trace_id:
            context.store("trace_id", trace_id)
        with LogContext(method=context.method, trace_id=trace_id, request_id=context.request_id):
            logger.debug("RPC call started")
            outcome = await next_call(context)
            logger.debug("RPC call finished outcome=%s", outcome.kind.value)
            return outcome
