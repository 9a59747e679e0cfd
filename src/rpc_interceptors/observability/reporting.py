"""Error reporters: sinks for structured exception details.

Reporters are fire-and-forget. ``report`` must be cheap and must never block
the calling RPC; a reporter that cannot accept a report raises
:class:`~rpc_interceptors.exceptions.ReportingError`, which the error-logging
interceptor contains.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from rpc_interceptors.exceptions import ReportingError

__all__ = [
    "ErrorReport",
    "ErrorReporter",
    "LoggingErrorReporter",
    "NullErrorReporter",
    "QueueingErrorReporter",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorReport:
    error_kind: str
    message: str
    method: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    cause: BaseException | None = None
    timestamp: float = field(default_factory=time.time)


class ErrorReporter(ABC):

    @abstractmethod
    def report(
        self,
        error_kind: str,
        message: str,
        method: str,
        metadata: Mapping[str, Any],
        *,
        cause: BaseException | None = None,
    ) -> None:
        """Submit one error. Must not block; may raise ReportingError."""
        raise NotImplementedError

    def start(self) -> None:
        """Acquire background resources. Called once at server startup."""

    def close(self, timeout: float | None = None) -> None:
        """Flush pending reports and release resources."""


class NullErrorReporter(ErrorReporter):
    def report(self, error_kind, message, method, metadata, *, cause=None) -> None:
        return None


class LoggingErrorReporter(ErrorReporter):
    """Writes each report as one ERROR record with structured extras.

    With the structured JSON formatter the record carries ``error_kind``,
    ``method`` and ``metadata`` fields plus the formatted traceback.
    """

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logging.getLogger("rpc_interceptors.errors")

    def report(self, error_kind, message, method, metadata, *, cause=None) -> None:
        exc_info = None
        if cause is not None:
            exc_info = (type(cause), cause, cause.__traceback__)
        self._logger.error(
            "RPC %s failed: %s: %s",
            method,
            error_kind,
            message,
            exc_info=exc_info,
            extra={
                "error_kind": error_kind,
                "method": method,
                "metadata": dict(metadata),
            },
        )


_STOP = object()


class QueueingErrorReporter(ErrorReporter):
    """Hands reports to a worker thread that forwards them to ``delegate``.

    Decouples the RPC path from a slow or flaky sink. ``report`` raises
    :class:`ReportingError` when the reporter is not running or the queue is
    full; it never waits. Delegate failures are logged on the worker and
    dropped.

    Args:
        delegate: Reporter that performs the actual delivery.
        maxsize: Queue bound; reports beyond it are rejected.
    """

    def __init__(self, delegate: ErrorReporter, *, maxsize: int = 1000) -> None:
        self._delegate = delegate
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=maxsize)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        self._running = False
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._delegate.start()
            self._worker = threading.Thread(
                target=self._drain,
                name="rpc-interceptors-error-reporter",
                daemon=True,
            )
            self._running = True
            self._worker.start()

    def report(self, error_kind, message, method, metadata, *, cause=None) -> None:
        item = ErrorReport(
            error_kind=error_kind,
            message=message,
            method=method,
            metadata=dict(metadata),
            cause=cause,
        )
        # Checked and enqueued under the lock so nothing lands behind the stop marker.
        with self._lock:
            if not self._running:
                raise ReportingError(message="Error reporter is not running")
            try:
                self._queue.put_nowait(item)
            except queue.Full as exc:
                self.dropped += 1
                raise ReportingError(message="Error report queue is full", cause=exc) from exc

    def close(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            worker = self._worker
            self._worker = None
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning(
                "Error report queue still full after %ss; %d pending reports abandoned",
                timeout,
                self._queue.qsize(),
            )
            worker = None
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Error reporter worker did not stop within %ss", timeout)
        self._delegate.close(timeout)

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._delegate.report(
                    item.error_kind,
                    item.message,
                    item.method,
                    item.metadata,
                    cause=item.cause,
                )
            except Exception:
                logger.exception("Error reporter delegate failed for %s", getattr(item, "method", "?"))
            finally:
                self._queue.task_done()
