from rpc_interceptors.config import ChainConfig, load_config
from rpc_interceptors.exceptions import (
    CancellationError,
    ConfigurationError,
    DeadlineExceededError,
    HandlerError,
    InvalidArgumentError,
    MethodNotFoundError,
    ReportingError,
    RpcException,
)
from rpc_interceptors.observability import (
    InMemoryMetricsCollector,
    LoggingErrorReporter,
    MetricLabels,
    MetricsCollector,
    ErrorReporter,
    QueueingErrorReporter,
)
from rpc_interceptors.server import (
    CallContext,
    GrpcChainInterceptor,
    HandlerInvoker,
    InterceptorChain,
    JsonRpcApp,
    RpcDispatcher,
    build_chain,
)
from rpc_interceptors.server.interceptors import (
    ErrorLoggingInterceptor,
    FunctionInterceptor,
    Interceptor,
    LatencyInterceptor,
    LogContextInterceptor,
    OTelServerInterceptor,
    RequestCountInterceptor,
)
from rpc_interceptors.types import Cancelled, Failure, Outcome, OutcomeKind, Success

__all__ = [
    "ChainConfig",
    "load_config",
    "CancellationError",
    "ConfigurationError",
    "DeadlineExceededError",
    "HandlerError",
    "InvalidArgumentError",
    "MethodNotFoundError",
    "ReportingError",
    "RpcException",
    "InMemoryMetricsCollector",
    "LoggingErrorReporter",
    "MetricLabels",
    "MetricsCollector",
    "ErrorReporter",
    "QueueingErrorReporter",
    "CallContext",
    "GrpcChainInterceptor",
    "HandlerInvoker",
    "InterceptorChain",
    "JsonRpcApp",
    "RpcDispatcher",
    "build_chain",
    "ErrorLoggingInterceptor",
    "FunctionInterceptor",
    "Interceptor",
    "LatencyInterceptor",
    "LogContextInterceptor",
    "OTelServerInterceptor",
    "RequestCountInterceptor",
    "Cancelled",
    "Failure",
    "Outcome",
    "OutcomeKind",
    "Success",
]
