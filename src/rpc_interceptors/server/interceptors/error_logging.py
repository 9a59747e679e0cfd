from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from rpc_interceptors.exceptions import CancellationError
from rpc_interceptors.observability.reporting import ErrorReporter
from rpc_interceptors.server.context import CallContext
from rpc_interceptors.server.interceptors.base import Interceptor, NextCall
from rpc_interceptors.server.metadata import trace_id_from_metadata
from rpc_interceptors.types import CANCELLED_ERROR_KIND, Cancelled, Failure, Outcome

__all__ = ["SENSITIVE_METADATA_KEYS", "ErrorLoggingInterceptor"]

logger = logging.getLogger(__name__)

# Never forwarded unless listed explicitly in metadata_keys. Binary (``-bin``)
# headers are dropped as well.
SENSITIVE_METADATA_KEYS = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
})


class ErrorLoggingInterceptor(Interceptor):
    """Forwards failures to an :class:`ErrorReporter` without altering them.

    A ``Failure`` outcome is returned as-is after reporting; an exception
    escaping ``next_call`` is reported and re-raised. Successes pass through
    untouched. If the reporter raises, the error is logged here and the call's
    outcome is unaffected.

    Args:
        reporter: Destination for error reports.
        metadata_keys: Context metadata keys to include in reports. ``None``
            forwards all inbound metadata except credentials and binary
            headers. The trace id and request id are always attached.
        report_cancellations: Also report cancelled calls.
    """

    def __init__(
        self,
        reporter: ErrorReporter,
        *,
        metadata_keys: Iterable[str] | None = None,
        report_cancellations: bool = False,
    ) -> None:
        self._reporter = reporter
        self._metadata_keys = tuple(metadata_keys) if metadata_keys is not None else None
        self._report_cancellations = report_cancellations

    async def intercept(self, next_call: NextCall, context: CallContext) -> Outcome:
        try:
            outcome = await next_call(context)
        except asyncio.CancelledError:
            if self._report_cancellations:
                self._report(CANCELLED_ERROR_KIND, "Call cancelled", context, None)
            raise
        except CancellationError as exc:
            if self._report_cancellations:
                self._report(CANCELLED_ERROR_KIND, exc.message, context, exc)
            raise
        except Exception as exc:
            self._report(type(exc).__name__, str(exc), context, exc)
            raise

        if isinstance(outcome, Failure):
            if not isinstance(outcome, Cancelled) or self._report_cancellations:
                self._report(outcome.error_kind, outcome.message, context, outcome.cause)
        return outcome

    def _report(
        self,
        error_kind: str,
        message: str,
        context: CallContext,
        cause: BaseException | None,
    ) -> None:
        try:
            self._reporter.report(
                error_kind,
                message,
                context.method,
                self._collect_metadata(context),
                cause=cause,
            )
        except Exception:
            logger.warning(
                "Error reporter unavailable; dropped report for %s (%s: %s)",
                context.method,
                error_kind,
                message,
                exc_info=True,
            )

    def _collect_metadata(self, context: CallContext) -> dict[str, Any]:
        if self._metadata_keys is None:
            metadata: dict[str, Any] = {
                key: value for key, value in context.metadata.items() if not _is_sensitive(key)
            }
        else:
            metadata = {key: context.metadata[key] for key in self._metadata_keys if key in context.metadata}
        trace_id = context.load("trace_id") or trace_id_from_metadata(context.metadata)
        if trace_id:
            metadata.setdefault("trace_id", trace_id)
        metadata.setdefault("request_id", context.request_id)
        return metadata


def _is_sensitive(key: str) -> bool:
    key = key.lower()
    return key in SENSITIVE_METADATA_KEYS or key.endswith("-bin")
