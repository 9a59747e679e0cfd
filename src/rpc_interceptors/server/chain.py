"""Static composition of interceptors around a handler.

Interceptors ``[I1, I2, ..., In]`` wrap a handler ``H`` right to left::

    I1.intercept(I2.intercept(... In.intercept(H) ...))

``I1`` is outermost: it sees the call first and the outcome last. The order is
whatever the deployment configuration lists; nothing is sorted or inferred.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable, Iterator

from rpc_interceptors.exceptions import ConfigurationError
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall
from rpc_interceptors.server.invoker import Handler, HandlerInvoker
from rpc_interceptors.types import Failure, Outcome, Success

__all__ = ["InterceptorChain"]

logger = logging.getLogger(__name__)


class InterceptorChain:
    """Immutable ordered sequence of interceptors.

    Built once at startup and shared read-only by every concurrent call.
    All validation happens here, so a bad configuration fails before the
    server accepts traffic.

    Args:
        interceptors: Interceptors, outermost first.
        invoker: Terminal handler invoker.

    Raises:
        ConfigurationError: On a non-interceptor entry, an instance registered
            twice, or two interceptors sharing a name.
    """

    __slots__ = ("_interceptors", "_invoker")

    def __init__(
        self,
        interceptors: Iterable[Interceptor] = (),
        *,
        invoker: HandlerInvoker | None = None,
    ) -> None:
        ordered = tuple(interceptors)
        seen_ids: set[int] = set()
        seen_names: dict[str, Interceptor] = {}
        for position, interceptor in enumerate(ordered):
            if not isinstance(interceptor, Interceptor):
                raise ConfigurationError(
                    message=f"Chain entry {position} is not an Interceptor: {interceptor!r}"
                )
            if id(interceptor) in seen_ids:
                raise ConfigurationError(
                    message=f"Interceptor {interceptor.name!r} registered more than once"
                )
            if interceptor.name in seen_names:
                raise ConfigurationError(
                    message=f"Conflicting registrations for interceptor name {interceptor.name!r}"
                )
            seen_ids.add(id(interceptor))
            seen_names[interceptor.name] = interceptor

        object.__setattr__(self, "_interceptors", ordered)
        object.__setattr__(self, "_invoker", invoker or HandlerInvoker())
        logger.debug("Interceptor chain built: %s", " -> ".join(self.names) or "<empty>")

    def __setattr__(self, key: str, value: object) -> None:
        raise AttributeError("InterceptorChain is immutable")

    def __iter__(self) -> Iterator[Interceptor]:
        return iter(self._interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)

    def __repr__(self) -> str:
        return f"InterceptorChain({list(self.names)!r})"

    @property
    def interceptors(self) -> tuple[Interceptor, ...]:
        return self._interceptors

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(interceptor.name for interceptor in self._interceptors)

    def bind(self, handler: Handler) -> NextCall:
        """Compose the chain around ``handler`` into one callable.

        Raises:
            ConfigurationError: If ``handler`` is missing or not callable.
        """
        if handler is None or not callable(handler):
            raise ConfigurationError(message=f"Handler must be callable, got {handler!r}")

        call: NextCall = functools.partial(self._invoker.invoke, handler)
        for interceptor in reversed(self._interceptors):
            call = functools.partial(_intercept_checked, interceptor, call)
        return call

    async def execute(self, handler: Handler, context: CallContext) -> Outcome:
        """Run one call through the chain.

        Prefer :meth:`bind` for repeated calls to the same handler.
        """
        return await self.bind(handler)(context)


async def _intercept_checked(interceptor: Interceptor, next_call: NextCall, context: CallContext) -> Outcome:
    outcome = await interceptor.intercept(next_call, context)
    if not isinstance(outcome, (Success, Failure)):
        raise TypeError(
            f"Interceptor {interceptor.name!r} returned {type(outcome).__name__}; "
            "intercept() must return Success or Failure"
        )
    return outcome
