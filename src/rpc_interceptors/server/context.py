from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from rpc_interceptors.exceptions import CancellationError, DeadlineExceededError

__all__ = ["CallContext", "MetadataValue"]

MetadataValue = str | bytes


@dataclass(eq=False)
class CallContext:
    """Per-invocation record handed through the interceptor chain.

    Created by the server integration point for each inbound call and
    discarded when the call completes. Interceptors keep per-call data in
    :attr:`state` (via :meth:`store`/:meth:`load`) rather than on themselves.

    Attributes:
        method: Stable method name used as the label for metrics and logs.
        request: Opaque request payload handed to the handler.
        metadata: Inbound metadata (trace id, tenant, ...). Mutable so outer
            interceptors can forward values inward.
        response_metadata: Metadata attached on the way back out.
        deadline: Absolute ``time.monotonic()`` deadline, or None.
        request_id: Correlation id for logs.
        state: Per-call scratch space for interceptors.
    """

    method: str
    request: Any = None
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    response_metadata: dict[str, MetadataValue] = field(default_factory=dict)
    deadline: float | None = None
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: dict[str, Any] = field(default_factory=dict)
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _cancel_reason: CancellationError | None = field(default=None, repr=False)

    @classmethod
    def with_timeout(cls, method: str, request: Any = None, timeout: float | None = None, **kwargs: Any) -> CallContext:
        """Build a context whose deadline is ``timeout`` seconds from now."""
        deadline = time.monotonic() + timeout if timeout is not None else None
        return cls(method=method, request=request, deadline=deadline, **kwargs)

    def store(self, key: str, value: Any) -> None:
        self.state[key] = value

    def load(self, key: str, default: Any = None) -> Any:
        return self.state.get(key, default)

    def cancel(self, reason: str = "Call cancelled") -> None:
        """Fire the cancellation signal. Idempotent; the first reason wins."""
        if self._cancel_reason is None:
            self._cancel_reason = CancellationError(message=reason)
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set() or self._cancel_reason is not None or self.deadline_exceeded

    @property
    def deadline_exceeded(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def time_remaining(self) -> float | None:
        """Seconds left before the deadline, None without one."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def cancellation_error(self) -> CancellationError:
        """Return the error describing why this call was cancelled."""
        if self._cancel_reason is not None:
            return self._cancel_reason
        if self.deadline_exceeded:
            return DeadlineExceededError()
        return CancellationError()

    async def wait_cancelled(self) -> CancellationError:
        """Block until the cancellation signal fires or the deadline passes."""
        remaining = self.time_remaining()
        if remaining is None:
            await self._cancel_event.wait()
        else:
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=remaining)
            except TimeoutError:
                # The loop may wake a hair before the monotonic deadline.
                if self._cancel_reason is None:
                    self._cancel_reason = DeadlineExceededError()
        return self.cancellation_error()
