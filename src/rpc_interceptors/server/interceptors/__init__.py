"""Server interceptors for the RPC chain.

Standard interceptors, listed in their default order (outermost first):
log context, request counting, latency, error logging. An OpenTelemetry span
interceptor is available as an optional extra.
"""
from __future__ import annotations

from rpc_interceptors.server.interceptors.base import (
    FunctionInterceptor,
    Interceptor,
    NextCall,
    classify_exit,
)
from rpc_interceptors.server.interceptors.counting import RequestCountInterceptor
from rpc_interceptors.server.interceptors.error_logging import ErrorLoggingInterceptor
from rpc_interceptors.server.interceptors.latency import LatencyInterceptor
from rpc_interceptors.server.interceptors.log_context import LogContextInterceptor
from rpc_interceptors.server.interceptors.telemetry import OTelServerInterceptor

__all__ = [
    "FunctionInterceptor",
    "Interceptor",
    "NextCall",
    "classify_exit",
    "RequestCountInterceptor",
    "ErrorLoggingInterceptor",
    "LatencyInterceptor",
    "LogContextInterceptor",
    "OTelServerInterceptor",
]
