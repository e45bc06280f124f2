from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorEnum(str, Enum):
    ALREADY_EXISTS = "already_exists"
    """Registration attempted with an email already in use."""
    BACKEND_ERROR = "backend_error"
    """Whatever the remote service reported (network, validation, server)."""
    DESERIALIZATION_ERROR = "deserialization_error"
    """A stored or received payload could not be parsed back into a model."""
    INVALID_CREDENTIALS = "invalid_credentials"
    """No account matches the email and password."""
    NOT_AUTHENTICATED = "not_authenticated"
    """Mutation attempted without an active session."""
    NOT_FOUND = "not_found"
    """Update targeting a reminder id which does not exist."""


class ErrorModel(BaseModel):
    code: ErrorEnum
    message: str


class ResultModel(BaseModel, Generic[T]):
    """
    Envelope returned by every storage operation.

    Expected failures are carried in `error` and never raised, callers check it before using `data`.
    """

    data: T | None = None
    error: ErrorModel | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, code: ErrorEnum, message: str):
        return cls(
            error=ErrorModel(
                code=code,
                message=message,
            )
        )
