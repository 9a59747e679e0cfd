"""gRPC (``grpc.aio``) integration for the interceptor chain.

Usage:
    chain = build_chain(config, collector, reporter)
    server = grpc.aio.server(interceptors=[GrpcChainInterceptor(chain)])

Unary-unary methods run through the chain. Streaming methods are passed
through untouched.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

import grpc

from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import NextCall
from rpc_interceptors.server.metadata import REQUEST_ID_KEY, normalize_metadata
from rpc_interceptors.server.status import ERROR_KIND_METADATA_KEY, failure_to_grpc_status
from rpc_interceptors.types import Failure

__all__ = ["GrpcChainInterceptor", "default_method_label"]

logger = logging.getLogger(__name__)

_SERVICER_CONTEXT_KEY = "grpc_context"


def default_method_label(full_method: str) -> str:
    """``/pkg.Service/Method`` -> ``pkg.Service/Method``."""
    return full_method.lstrip("/")


class GrpcChainInterceptor(grpc.aio.ServerInterceptor):
    """Routes unary-unary gRPC calls through an :class:`InterceptorChain`.

    Invocation metadata becomes :attr:`CallContext.metadata`, the call deadline
    becomes the context deadline, and a client cancellation fires the context's
    cancellation signal. A ``Failure`` outcome aborts the RPC with a mapped
    status code, the original message as details and the original error kind
    in the ``x-error-kind`` trailing metadata.

    Args:
        chain: Interceptor chain shared by every method.
        method_label: Maps the full gRPC method path to the label used for
            metrics and logs.
    """

    def __init__(
        self,
        chain: InterceptorChain,
        *,
        method_label: Callable[[str], str] = default_method_label,
    ) -> None:
        self._chain = chain
        self._method_label = method_label
        self._pipelines: dict[str, NextCall] = {}

    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Any],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler | None:
        handler = await continuation(handler_call_details)
        if handler is None:
            return None
        if handler.request_streaming or handler.response_streaming:
            logger.debug("Streaming method %s bypasses the interceptor chain", handler_call_details.method)
            return handler

        full_method = handler_call_details.method
        pipeline = self._pipeline(full_method, handler.unary_unary)
        method = self._method_label(full_method)

        async def _behavior(request: Any, servicer_context: grpc.aio.ServicerContext) -> Any:
            context = self._build_context(method, request, servicer_context)
            outcome = await pipeline(context)
            if isinstance(outcome, Failure):
                await self._abort(servicer_context, outcome, context)
            if context.response_metadata:
                servicer_context.set_trailing_metadata(_to_grpc_metadata(context.response_metadata))
            return outcome.response

        return grpc.unary_unary_rpc_method_handler(
            _behavior,
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )

    def _pipeline(self, full_method: str, behavior: Callable[..., Any]) -> NextCall:
        pipeline = self._pipelines.get(full_method)
        if pipeline is None:

            async def _invoke(request: Any, context: CallContext) -> Any:
                result = behavior(request, context.load(_SERVICER_CONTEXT_KEY))
                if inspect.isawaitable(result):
                    result = await result
                return result

            pipeline = self._chain.bind(_invoke)
            self._pipelines[full_method] = pipeline
        return pipeline

    @staticmethod
    def _build_context(
        method: str,
        request: Any,
        servicer_context: grpc.aio.ServicerContext,
    ) -> CallContext:
        metadata = normalize_metadata(servicer_context.invocation_metadata() or ())
        context = CallContext.with_timeout(
            method,
            request,
            servicer_context.time_remaining(),
            metadata=metadata,
        )
        request_id = metadata.get(REQUEST_ID_KEY)
        if isinstance(request_id, str) and request_id:
            context.request_id = request_id
        context.store(_SERVICER_CONTEXT_KEY, servicer_context)
        add_done_callback = getattr(servicer_context, "add_done_callback", None)
        if add_done_callback is not None:
            add_done_callback(lambda _: context.cancel("Client cancelled the call"))
        return context

    @staticmethod
    async def _abort(
        servicer_context: grpc.aio.ServicerContext,
        failure: Failure,
        context: CallContext,
    ) -> None:
        if isinstance(failure.cause, grpc.aio.AbortError):
            # The handler aborted with its own status; keep it.
            raise failure.cause
        trailing = dict(context.response_metadata)
        trailing[ERROR_KIND_METADATA_KEY] = failure.error_kind
        await servicer_context.abort(
            failure_to_grpc_status(failure),
            failure.message,
            _to_grpc_metadata(trailing),
        )


def _to_grpc_metadata(metadata: dict[str, Any]) -> tuple[tuple[str, Any], ...]:
    return tuple((key.lower(), value) for key, value in metadata.items())
