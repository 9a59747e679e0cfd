"""Map chain outcomes to transport-native error representations."""

from __future__ import annotations

from typing import Any

import grpc

from rpc_interceptors.exceptions import (
    CancellationError,
    ConfigurationError,
    DeadlineExceededError,
    HandlerError,
    InvalidArgumentError,
    MethodNotFoundError,
    RpcException,
)
from rpc_interceptors.types import Cancelled, Failure

__all__ = [
    "ERROR_KIND_METADATA_KEY",
    "JSONRPC_INTERNAL_ERROR",
    "JSONRPC_INVALID_PARAMS",
    "JSONRPC_INVALID_REQUEST",
    "JSONRPC_METHOD_NOT_FOUND",
    "JSONRPC_PARSE_ERROR",
    "failure_to_grpc_status",
    "failure_to_jsonrpc_error",
]

ERROR_KIND_METADATA_KEY = "x-error-kind"

JSONRPC_PARSE_ERROR = -32700
JSONRPC_INVALID_REQUEST = -32600
JSONRPC_METHOD_NOT_FOUND = -32601
JSONRPC_INVALID_PARAMS = -32602
JSONRPC_INTERNAL_ERROR = -32603
# Implementation-defined server error range.
JSONRPC_HANDLER_ERROR = -32000
JSONRPC_CANCELLED = -32001

_GRPC_STATUS_BY_EXCEPTION: tuple[tuple[type[BaseException], grpc.StatusCode], ...] = (
    (DeadlineExceededError, grpc.StatusCode.DEADLINE_EXCEEDED),
    (CancellationError, grpc.StatusCode.CANCELLED),
    (MethodNotFoundError, grpc.StatusCode.UNIMPLEMENTED),
    (InvalidArgumentError, grpc.StatusCode.INVALID_ARGUMENT),
    (ConfigurationError, grpc.StatusCode.INTERNAL),
    (HandlerError, grpc.StatusCode.UNKNOWN),
    (NotImplementedError, grpc.StatusCode.UNIMPLEMENTED),
    (PermissionError, grpc.StatusCode.PERMISSION_DENIED),
    (TimeoutError, grpc.StatusCode.DEADLINE_EXCEEDED),
)


def failure_to_grpc_status(failure: Failure) -> grpc.StatusCode:
    """Status code for a failed call. Unknown handler errors map to UNKNOWN."""
    cause = failure.cause
    if cause is not None:
        for exc_type, status in _GRPC_STATUS_BY_EXCEPTION:
            if isinstance(cause, exc_type):
                return status
    if isinstance(failure, Cancelled):
        return grpc.StatusCode.CANCELLED
    return grpc.StatusCode.UNKNOWN


def failure_to_jsonrpc_error(failure: Failure) -> dict[str, Any]:
    """JSON-RPC 2.0 error object carrying the original kind and message."""
    cause = failure.cause
    if isinstance(cause, MethodNotFoundError):
        code = JSONRPC_METHOD_NOT_FOUND
    elif isinstance(cause, InvalidArgumentError):
        code = JSONRPC_INVALID_PARAMS
    elif isinstance(failure, Cancelled):
        code = JSONRPC_CANCELLED
    else:
        code = JSONRPC_HANDLER_ERROR

    data: dict[str, Any] = {"kind": failure.error_kind}
    if isinstance(cause, RpcException):
        data["code"] = cause.code
        if cause.data is not None:
            data["detail"] = cause.data
    return {"code": code, "message": failure.message, "data": data}
