from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RpcException(Exception):
    """Base class for interceptor-chain exceptions with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: Exception | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        """Return a dict usable as a transport error payload."""
        return {"code": self.code, "message": self.message, "data": self.data}


@dataclass(frozen=True)
class ConfigurationError(RpcException):
    """Raised at startup when the interceptor chain is misconfigured."""

    code: int = 1000
    message: str = "Invalid interceptor configuration"


@dataclass(frozen=True)
class HandlerError(RpcException):
    """Raised by business logic to signal a handler failure."""

    code: int = 2000
    message: str = "Handler error"


@dataclass(frozen=True)
class InvalidArgumentError(HandlerError):
    """Raised by handlers when the request payload is invalid."""

    code: int = 2001
    message: str = "Invalid argument"


@dataclass(frozen=True)
class MethodNotFoundError(RpcException):
    """Raised when no handler is registered for the RPC method name."""

    code: int = 4001
    message: str = "Method not found"


@dataclass(frozen=True)
class CancellationError(RpcException):
    """The call's cancellation signal or deadline fired before the handler finished."""

    code: int = 5003
    message: str = "Call cancelled"


@dataclass(frozen=True)
class DeadlineExceededError(CancellationError):
    """The call's deadline elapsed before the handler finished."""

    code: int = 5004
    message: str = "Deadline exceeded"


@dataclass(frozen=True)
class ReportingError(RpcException):
    """Raised by an error reporter that cannot accept a report.

    Never surfaced to RPC callers; the error-logging interceptor contains it.
    """

    code: int = 6000
    message: str = "Error reporter unavailable"
