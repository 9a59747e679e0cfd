from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

__all__ = [
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "ContextFilter",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
]


LOG_FORMAT_ENV = "RPC_INTERCEPTORS_LOG_FORMAT"
LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"

# Always present on records, "-" outside of a call.
_CALL_FIELDS = ("method", "trace_id", "request_id")
_UNSET = "-"

_LOG_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("rpc_interceptors_log_context")

_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime"}


def _bound_fields() -> dict[str, Any]:
    fields: dict[str, Any] = dict.fromkeys(_CALL_FIELDS, _UNSET)
    fields.update(_LOG_CONTEXT.get({}))
    return fields


class LogContext:
    """Binds call identifiers to every record logged inside a ``with`` block.

    Bindings live in a context variable, so they follow the current task and
    any task created from it. Nested contexts layer on top of the outer one;
    ``None`` values are ignored.
    """

    def __init__(
        self,
        method: str | None = None,
        trace_id: str | None = None,
        request_id: str | None = None,
        **extra: Any,
    ) -> None:
        values = {"method": method, "trace_id": trace_id, "request_id": request_id, **extra}
        self._values = {key: value for key, value in values.items() if value is not None}
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get({}), **self._values})
        return self

    def __exit__(self, exc_type: Any, exc: Any, traceback: Any) -> None:
        if self._token is not None:
            _LOG_CONTEXT.reset(self._token)
            self._token = None

    @classmethod
    def clear(cls) -> None:
        _LOG_CONTEXT.set({})


class ContextFilter(logging.Filter):
    """Stamps the bound call fields onto each record passing through."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _bound_fields().items():
            record.__dict__.setdefault(key, value)
        return True


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per line: core fields, call fields, then ``extra=`` values."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return created.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in {**_bound_fields(), **record.__dict__}.items():
            if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
                continue
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_to_json)


class StructuredConsoleFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)s %(name)s %(message)s "
            "method=%(method)s trace_id=%(trace_id)s request_id=%(request_id)s"
        )


def _to_json(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def get_logger(
    name: str,
    *,
    log_format: str | None = None,
    level: int | None = None,
    stream: Any | None = None,
) -> logging.Logger:
    """Return ``name``'s logger with a structured stream handler attached.

    The format is ``json`` or ``console``; when not given it comes from
    ``RPC_INTERCEPTORS_LOG_FORMAT``, and anything unrecognised means json.
    Calling again with the same format does not add a second handler.
    """
    requested = (log_format or os.getenv(LOG_FORMAT_ENV) or "").strip().lower()
    kind = LOG_FORMAT_CONSOLE if requested == LOG_FORMAT_CONSOLE else LOG_FORMAT_JSON
    logger = logging.getLogger(name)
    if any(getattr(handler, "_rpc_interceptors_format", None) == kind for handler in logger.handlers):
        return logger

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredConsoleFormatter() if kind == LOG_FORMAT_CONSOLE else StructuredJSONFormatter())
    handler.addFilter(ContextFilter())
    handler._rpc_interceptors_format = kind
    logger.addHandler(handler)
    if level is not None:
        logger.setLevel(level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def configure_logging(level: str = "INFO", log_format: str | None = None, *, stream: Any | None = None) -> logging.Logger:
    """Attach the structured handler to the package root logger."""
    return get_logger(
        "rpc_interceptors",
        log_format=log_format,
        level=logging.getLevelNamesMapping().get(level.upper(), logging.INFO),
        stream=stream,
    )
