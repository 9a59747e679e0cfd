from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

__all__ = [
    "DEFAULT_INTERCEPTOR_ORDER",
    "ChainConfig",
    "ErrorLoggingConfig",
    "LatencyConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ReporterConfig",
]

# Outermost first.
DEFAULT_INTERCEPTOR_ORDER: tuple[str, ...] = ("log_context", "request_count", "latency", "error_logging")

METRICS_BACKENDS = frozenset({"memory", "otel", "none"})
REPORTER_BACKENDS = frozenset({"logging", "otel", "none"})
LOG_FORMATS = frozenset({"json", "console"})
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _ensure_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    return cast(Mapping[str, Any], value)


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise TypeError(f"{field_name} must be a bool")


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"{field_name} must be an int")


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_str_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    if isinstance(value, Sequence):
        return tuple(_coerce_str(item, field_name).strip() for item in value)
    raise TypeError(f"{field_name} must be a list of strings")


def _choice(choices: frozenset[str], *, upper: bool = False) -> Callable[[Any, str], str]:
    def _wrapped(value: Any, field_name: str) -> str:
        text = _coerce_str(value, field_name).strip()
        text = text.upper() if upper else text.lower()
        if text not in choices:
            raise ValueError(f"{field_name} must be one of {sorted(choices)}, got {value!r}")
        return text

    return _wrapped


def _optional(coerce: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        if value is None:
            return None
        return coerce(value, field_name)

    return _wrapped


FieldSpec = tuple[str, Callable[[Any, str], Any], str]


def _extract_fields(payload: Mapping[str, Any], specs: Sequence[FieldSpec]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for name, coerce, label in specs:
        if name in payload:
            kwargs[name] = coerce(payload[name], label)
    return kwargs


@dataclass(frozen=True, slots=True)
class LatencyConfig:
    split_by_outcome: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> LatencyConfig:
        payload = _ensure_mapping(data or {}, "latency")
        return cls(**_extract_fields(payload, [
            ("split_by_outcome", _coerce_bool, "latency.split_by_outcome"),
        ]))


@dataclass(frozen=True, slots=True)
class ErrorLoggingConfig:
    """Error-logging interceptor settings.

    Attributes:
        metadata_keys: Metadata keys forwarded with each report; None forwards
            all but credential and binary headers. trace_id and request_id
            are always attached.
        report_cancellations: Also report cancelled calls.
    """

    metadata_keys: tuple[str, ...] | None = None
    report_cancellations: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ErrorLoggingConfig:
        payload = _ensure_mapping(data or {}, "error_logging")
        return cls(**_extract_fields(payload, [
            ("metadata_keys", _optional(_coerce_str_tuple), "error_logging.metadata_keys"),
            ("report_cancellations", _coerce_bool, "error_logging.report_cancellations"),
        ]))


@dataclass(frozen=True, slots=True)
class MetricsConfig:
    backend: str = "memory"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricsConfig:
        payload = _ensure_mapping(data or {}, "metrics")
        return cls(**_extract_fields(payload, [
            ("backend", _choice(METRICS_BACKENDS), "metrics.backend"),
        ]))


@dataclass(frozen=True, slots=True)
class ReporterConfig:
    """Error reporter settings.

    Attributes:
        backend: ``logging``, ``otel`` or ``none``.
        queue_size: Bound of the background queue in front of the reporter;
            0 reports synchronously. Ignored for ``otel``, which must run on
            the calling task.
    """

    backend: str = "logging"
    queue_size: int = 1000

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ReporterConfig:
        payload = _ensure_mapping(data or {}, "reporter")
        kwargs = _extract_fields(payload, [
            ("backend", _choice(REPORTER_BACKENDS), "reporter.backend"),
            ("queue_size", _coerce_int, "reporter.queue_size"),
        ])
        if kwargs.get("queue_size", 0) < 0:
            raise ValueError("reporter.queue_size must be >= 0")
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> LoggingConfig:
        payload = _ensure_mapping(data or {}, "logging")
        return cls(**_extract_fields(payload, [
            ("level", _choice(LOG_LEVELS, upper=True), "logging.level"),
            ("format", _choice(LOG_FORMATS), "logging.format"),
        ]))


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Deployment configuration of the interceptor chain.

    ``interceptors`` lists interceptor names outermost first; the order is
    used verbatim.
    """

    interceptors: tuple[str, ...] = DEFAULT_INTERCEPTOR_ORDER
    latency: LatencyConfig = field(default_factory=LatencyConfig)
    error_logging: ErrorLoggingConfig = field(default_factory=ErrorLoggingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    reporter: ReporterConfig = field(default_factory=ReporterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ChainConfig:
        payload = _ensure_mapping(data or {}, "config")
        kwargs: dict[str, Any] = {}
        if "interceptors" in payload:
            kwargs["interceptors"] = _coerce_str_tuple(payload["interceptors"], "interceptors")
        kwargs["latency"] = LatencyConfig.from_dict(payload.get("latency"))
        kwargs["error_logging"] = ErrorLoggingConfig.from_dict(payload.get("error_logging"))
        kwargs["metrics"] = MetricsConfig.from_dict(payload.get("metrics"))
        kwargs["reporter"] = ReporterConfig.from_dict(payload.get("reporter"))
        kwargs["logging"] = LoggingConfig.from_dict(payload.get("logging"))
        return cls(**kwargs)
