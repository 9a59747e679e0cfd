from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from rpc_interceptors.server.context import CallContext
from rpc_interceptors.exceptions import CancellationError
from rpc_interceptors.types import CANCELLED_ERROR_KIND, Failure, Outcome, OutcomeKind, Success

__all__ = ["MISSING_OUTCOME_ERROR_KIND", "FunctionInterceptor", "Interceptor", "NextCall", "classify_exit"]

MISSING_OUTCOME_ERROR_KIND = "MissingOutcome"

NextCall = Callable[[CallContext], Awaitable[Outcome]]


class Interceptor(ABC):
    """One cross-cutting behavior wrapped around the rest of the chain.

    Implementations call ``await next_call(context)`` to run everything
    downstream (inner interceptors and the handler) or return an outcome of
    their own to short-circuit. Instances are shared by concurrent calls, so
    per-call values belong in :attr:`CallContext.state`.
    """

    @property
    def name(self) -> str:
        """Registration name; two interceptors in one chain must not share it."""
        return type(self).__name__

    @abstractmethod
    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        raise NotImplementedError


class FunctionInterceptor(Interceptor):
    """Adapts a plain ``async def fn(next_call, context)`` into an interceptor.

    Usage:
        async def require_tenant(next_call, ctx):
            if "tenant_id" not in ctx.metadata:
                return Failure("InvalidArgumentError", "tenant_id required")
            return await next_call(ctx)

        chain = InterceptorChain([FunctionInterceptor(require_tenant)])
    """

    def __init__(
        self,
        func: Callable[[NextCall, CallContext], Awaitable[Outcome]],
        *,
        name: str | None = None,
    ) -> None:
        self._func = func
        self._name = name or getattr(func, "__name__", type(self).__name__)

    @property
    def name(self) -> str:
        return self._name

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        return await self._func(next_call, context)


def classify_exit(outcome: Outcome | None, exc: BaseException | None) -> tuple[OutcomeKind, str]:
    """Return ``(outcome kind, error kind)`` for however ``next_call`` exited.

    ``exc`` is the exception that escaped ``next_call`` when no outcome was
    produced. Task cancellation counts as a cancelled call; a link that
    returned nothing at all counts as a failure.
    """
    if isinstance(outcome, (Success, Failure)):
        if isinstance(outcome, Failure):
            return outcome.kind, outcome.error_kind
        return outcome.kind, ""
    if exc is None:
        return OutcomeKind.FAILURE, MISSING_OUTCOME_ERROR_KIND
    if isinstance(exc, (asyncio.CancelledError, CancellationError)):
        return OutcomeKind.CANCELLED, CANCELLED_ERROR_KIND
    return OutcomeKind.FAILURE, type(exc).__name__
