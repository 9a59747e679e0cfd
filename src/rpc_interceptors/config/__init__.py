"""Configuration helpers."""

from .loader import ConfigError, load_config, load_config_from_string
from .models import (
    DEFAULT_INTERCEPTOR_ORDER,
    ChainConfig,
    ErrorLoggingConfig,
    LatencyConfig,
    LoggingConfig,
    MetricsConfig,
    ReporterConfig,
)

__all__ = [
    "ConfigError",
    "load_config",
    "load_config_from_string",
    "DEFAULT_INTERCEPTOR_ORDER",
    "ChainConfig",
    "ErrorLoggingConfig",
    "LatencyConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ReporterConfig",
]
