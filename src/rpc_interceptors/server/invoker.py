"""Terminal link of the chain: runs the handler and translates its result."""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from rpc_interceptors.server.context import CallContext
from rpc_interceptors.types import Cancelled, Failure, Outcome, Success

__all__ = ["Handler", "HandlerInvoker"]

Handler = Callable[..., Any]


class HandlerInvoker:
    """Executes one handler for one call context.

    Handlers receive the request payload and, when their signature declares a
    ``context`` parameter, the :class:`CallContext` as keyword argument.
    Coroutine functions are awaited in the calling task; plain callables run in
    a worker thread so a blocking handler never stalls the event loop.

    Exceptions raised by the handler become :class:`Failure` outcomes carrying
    the original class name and message. Nothing is logged or suppressed here.
    """

    __slots__ = ()

    async def invoke(self, handler: Handler, context: CallContext) -> Outcome:
        if context.cancelled:
            return Cancelled.from_exception(context.cancellation_error())

        task = asyncio.ensure_future(self._bind(handler, context)())
        watcher = asyncio.ensure_future(context.wait_cancelled())
        try:
            await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            # The serving task itself was cancelled; take the handler with it.
            task.cancel()
            raise
        finally:
            watcher.cancel()

        if not task.done():
            task.cancel()
            await asyncio.wait({task})

        if task.cancelled():
            return Cancelled.from_exception(context.cancellation_error())
        exc = task.exception()
        if exc is not None:
            return Failure.from_exception(exc)
        return Success(task.result())

    @staticmethod
    def _bind(handler: Handler, context: CallContext) -> Callable[[], Awaitable[Any]]:
        kwargs: dict[str, Any] = {}
        if _accepts_context(handler):
            kwargs["context"] = context

        if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
            getattr(handler, "__call__", None)
        ):
            return functools.partial(handler, context.request, **kwargs)

        async def _run_sync() -> Any:
            result = await asyncio.to_thread(handler, context.request, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        return _run_sync


def _accepts_context(handler: Handler) -> bool:
    try:
        parameters = inspect.signature(handler).parameters
    except (TypeError, ValueError):
        return False
    return "context" in parameters
