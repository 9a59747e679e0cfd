"""Outcome types produced by every chain execution.

A call terminates in exactly one of :class:`Success` or :class:`Failure`.
Cancellation is modelled as the :class:`Cancelled` variant of ``Failure`` so
that callers which only distinguish the two primary variants still see a
failure, while metrics can label it with its own outcome kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias

from rpc_interceptors.exceptions import CancellationError, HandlerError

__all__ = [
    "CANCELLED_ERROR_KIND",
    "Cancelled",
    "Failure",
    "Outcome",
    "OutcomeKind",
    "Success",
]

CANCELLED_ERROR_KIND = "Cancelled"


class OutcomeKind(StrEnum):
    """Outcome label used by metrics and logs."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class Success:
    """Handler returned normally."""

    response: Any = None

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.SUCCESS

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Any:
        return self.response


@dataclass(frozen=True, slots=True)
class Failure:
    """Handler (or an interceptor) failed.

    Attributes:
        error_kind: Original error class name, e.g. ``"ValueError"``.
        message: Original error message, verbatim.
        cause: The exception instance when one exists. Excluded from equality
            so outcomes compare by kind and message.
    """

    error_kind: str
    message: str
    cause: BaseException | None = field(default=None, compare=False)

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.FAILURE

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failure:
        """Translate an exception into a failure without altering kind or message."""
        if isinstance(exc, CancellationError):
            return Cancelled(message=exc.message, cause=exc)
        return cls(error_kind=type(exc).__name__, message=str(exc), cause=exc)

    def to_exception(self) -> BaseException:
        """Return the exception a raising caller should see."""
        if self.cause is not None:
            return self.cause
        return HandlerError(message=self.message, data={"kind": self.error_kind})

    def unwrap(self) -> Any:
        raise self.to_exception()


@dataclass(frozen=True, slots=True)
class Cancelled(Failure):
    """The call's cancellation signal or deadline fired before completion."""

    error_kind: str = CANCELLED_ERROR_KIND
    message: str = "Call cancelled"

    @property
    def kind(self) -> OutcomeKind:
        return OutcomeKind.CANCELLED

    def to_exception(self) -> BaseException:
        if self.cause is not None:
            return self.cause
        return CancellationError(message=self.message)


Outcome: TypeAlias = Success | Failure
