"""Transport-agnostic server integration point.

Every registered method is bound to the interceptor chain once, at
construction. Transport adapters translate their call representation into a
``dispatch`` call and the returned Outcome back into their response or error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

from rpc_interceptors.config.models import ChainConfig
from rpc_interceptors.exceptions import ConfigurationError, MethodNotFoundError
from rpc_interceptors.observability.logging import configure_logging
from rpc_interceptors.observability.metrics import MetricsCollector, NullMetricsCollector
from rpc_interceptors.observability.reporting import ErrorReporter, NullErrorReporter
from rpc_interceptors.server.builder import build_chain, build_collector, build_reporter
from rpc_interceptors.server.chain import InterceptorChain
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import NextCall
from rpc_interceptors.server.invoker import Handler
from rpc_interceptors.server.metadata import REQUEST_ID_KEY, normalize_metadata
from rpc_interceptors.types import Failure, Outcome

__all__ = ["RpcDispatcher"]

logger = logging.getLogger(__name__)


class RpcDispatcher:
    """Routes every inbound call for a registered method through the chain.

    Owns the lifecycle of the metrics collector and error reporter it was
    given: :meth:`start` before serving, :meth:`aclose` at shutdown (or use it
    as an async context manager).

    Args:
        handlers: Method name to handler mapping.
        chain: The shared interceptor chain.
        collector: Metrics collector used by the chain's interceptors.
        reporter: Error reporter used by the chain's interceptors.

    Raises:
        ConfigurationError: On an empty method name or a non-callable handler.
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler],
        chain: InterceptorChain,
        *,
        collector: MetricsCollector | None = None,
        reporter: ErrorReporter | None = None,
    ) -> None:
        self.chain = chain
        self.collector = collector or NullMetricsCollector()
        self.reporter = reporter or NullErrorReporter()
        self._pipelines: dict[str, NextCall] = {}
        for method, handler in handlers.items():
            if not method:
                raise ConfigurationError(message="Method name must not be empty")
            try:
                self._pipelines[method] = chain.bind(handler)
            except ConfigurationError as exc:
                raise ConfigurationError(
                    message=f"Invalid handler for method {method!r}: {exc.message}"
                ) from exc
        self._started = False

    @classmethod
    def from_config(cls, handlers: Mapping[str, Handler], config: ChainConfig | None = None) -> RpcDispatcher:
        """Build collector, reporter and chain from a deployment config."""
        config = config or ChainConfig()
        configure_logging(config.logging.level, config.logging.format)
        collector = build_collector(config.metrics)
        reporter = build_reporter(config.reporter)
        chain = build_chain(config, collector, reporter)
        return cls(handlers, chain, collector=collector, reporter=reporter)

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._pipelines)

    def has_method(self, method: str) -> bool:
        return method in self._pipelines

    async def start(self) -> None:
        if self._started:
            return
        self.reporter.start()
        self._started = True
        logger.info("RPC dispatcher started with %d methods via %r", len(self._pipelines), self.chain)

    async def aclose(self) -> None:
        if not self._started:
            return
        self._started = False
        try:
            await asyncio.to_thread(self.reporter.close)
        finally:
            self.collector.shutdown()
        logger.info("RPC dispatcher stopped")

    async def __aenter__(self) -> RpcDispatcher:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    def new_context(
        self,
        method: str,
        request: Any = None,
        *,
        metadata: Any = None,
        timeout: float | None = None,
    ) -> CallContext:
        """Fresh call context for one inbound call."""
        normalized = normalize_metadata(metadata)
        context = CallContext.with_timeout(method, request, timeout, metadata=normalized)
        request_id = normalized.get(REQUEST_ID_KEY)
        if isinstance(request_id, str) and request_id:
            context.request_id = request_id
        return context

    async def dispatch(
        self,
        method: str,
        request: Any = None,
        *,
        metadata: Any = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Run one call for ``method`` through the chain."""
        return await self.dispatch_context(self.new_context(method, request, metadata=metadata, timeout=timeout))

    async def dispatch_context(self, context: CallContext) -> Outcome:
        """Run a prepared context through the chain.

        Unregistered methods never enter the chain; they fail with
        ``MethodNotFoundError``.
        """
        pipeline = self._pipelines.get(context.method)
        if pipeline is None:
            logger.warning("No handler registered for method %s", context.method)
            return Failure.from_exception(MethodNotFoundError(message=f"Method not found: {context.method}"))
        return await pipeline(context)
