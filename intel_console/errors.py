"""Typed error values and the result wrapper returned by every handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")


class ErrorType(StrEnum):
    validation = "validation"
    not_found = "not_found"
    conflict = "conflict"
    failure = "failure"


@dataclass(frozen=True)
class Error:
    code: str
    description: str
    type: ErrorType = ErrorType.failure

    @classmethod
    def validation(cls, code: str, description: str) -> "Error":
        return cls(code=code, description=description, type=ErrorType.validation)

    @classmethod
    def not_found(cls, code: str, description: str) -> "Error":
        return cls(code=code, description=description, type=ErrorType.not_found)

    @classmethod
    def conflict(cls, code: str, description: str) -> "Error":
        return cls(code=code, description=description, type=ErrorType.conflict)

    @classmethod
    def failure(cls, code: str, description: str) -> "Error":
        return cls(code=code, description=description, type=ErrorType.failure)


def alert_not_found(alert_id: Any) -> Error:
    return Error.not_found("Alert.NotFound", f"Alert with ID '{alert_id}' was not found.")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a value or one or more errors.

    Expected failures (validation, not found, conflict) travel through the
    handler and mediator chain as a Result; they are never raised.
    """

    _value: Optional[T] = None
    errors: List[Error] = field(default_factory=list)

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(_value=value)

    @classmethod
    def fail(cls, *errors: Error) -> "Result[T]":
        if not errors:
            raise ValueError("Result.fail requires at least one error")
        return cls(errors=list(errors))

    @classmethod
    def from_errors(cls, errors: Sequence[Error]) -> "Result[T]":
        return cls.fail(*errors)

    @property
    def is_error(self) -> bool:
        return bool(self.errors)

    @property
    def value(self) -> T:
        if self.errors:
            raise ValueError(f"Result holds errors, not a value: {self.first_error.code}")
        return self._value  # type: ignore[return-value]

    @property
    def first_error(self) -> Error:
        if not self.errors:
            raise ValueError("Result holds a value, not errors")
        return self.errors[0]


class MediatorConfigurationError(RuntimeError):
    """Raised for handler registration mistakes; never a user-facing condition."""


class HandlerNotRegisteredError(MediatorConfigurationError):
    def __init__(self, request_type: type) -> None:
        super().__init__(f"No handler registered for {request_type.__name__}")
        self.request_type = request_type


class DuplicateHandlerError(MediatorConfigurationError):
    def __init__(self, request_type: type) -> None:
        super().__init__(f"A handler is already registered for {request_type.__name__}")
        self.request_type = request_type
