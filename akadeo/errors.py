"""Domain errors and the result type used by services."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, NoReturn, TypeVar

from fastapi import status

T = TypeVar("T")


class ErrorType(StrEnum):
    """Error categories exposed in the response envelope."""

    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT = "RATE_LIMIT"
    INTERNAL = "INTERNAL"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"


class AppError(Exception):
    """An error that is rendered to the client as-is.

    Carries the HTTP status, an error type, a stable machine-readable code
    independent of the human message, and optional structured details
    (commonly ``{"field": ...}``).
    """

    def __init__(
        self,
        status_code: int,
        error_type: ErrorType,
        message: str,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.message = message
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"<AppError({self.status_code}, {self.error_type}, code={self.code})>"

    @classmethod
    def validation(
        cls,
        message: str,
        code: str,
        field: str | None = None,
        status_code: int = 422,
    ) -> "AppError":
        details = {"field": field} if field else None
        return cls(status_code, ErrorType.VALIDATION, message, code, details)

    @classmethod
    def auth(cls, message: str, code: str, details: Any = None) -> "AppError":
        return cls(status.HTTP_401_UNAUTHORIZED, ErrorType.AUTH, message, code, details)

    @classmethod
    def conflict(cls, message: str, code: str, field: str | None = None) -> "AppError":
        details = {"field": field} if field else None
        return cls(status.HTTP_409_CONFLICT, ErrorType.CONFLICT, message, code, details)

    @classmethod
    def not_found(cls, message: str, code: str, field: str | None = None) -> "AppError":
        details = {"field": field} if field else None
        return cls(status.HTTP_404_NOT_FOUND, ErrorType.NOT_FOUND, message, code, details)

    @classmethod
    def internal(
        cls,
        message: str,
        code: str | None = None,
        details: Any = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    ) -> "AppError":
        return cls(status_code, ErrorType.INTERNAL, message, code, details)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome of a service call."""

    value: T

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Expected failure of a service call."""

    error: AppError

    def unwrap(self) -> NoReturn:
        raise self.error


Result = Ok[T] | Err
