# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Error taxonomy and explicit result types.

Validators raise ValidationError; the lifecycle engine returns Ok / Err;
the command router is the only place either becomes user-visible text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")

GENERIC_ERROR_MESSAGE = "⚠️ An error occurred. Please try again."


class CaseError(Exception):
    """Base class for every error raised inside casebot."""


class ValidationError(CaseError):
    """Bad input. The message is curated and safe to show to the caller."""


class AccessDenied(CaseError):
    """Gate or rate-limit rejection. The message is safe to show."""


class PreconditionFailed(CaseError):
    """Lifecycle guard violation: not found, wrong state, already in target state."""


class CollaboratorFailure(CaseError):
    """Persistence or gateway I/O failure. Never shown verbatim."""


class ConflictError(CollaboratorFailure):
    """A concurrent writer won the race for the same row."""


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    ACCESS_DENIED = "access_denied"
    PRECONDITION = "precondition"
    COLLABORATOR = "collaborator"

    @property
    def user_safe(self) -> bool:
        return self is not ErrorKind.COLLABORATOR


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[Any], Err]


def precondition(detail: str) -> Err:
    return Err(ErrorKind.PRECONDITION, detail)


def safe_error_message(error: Union[Err, BaseException]) -> str:
    """Translate an Err or exception into the text a user is allowed to see."""
    if isinstance(error, Err):
        if error.kind.user_safe:
            return error.detail if error.detail.startswith("⚠️") else f"⚠️ {error.detail}"
        return GENERIC_ERROR_MESSAGE
    if isinstance(error, (ValidationError, PreconditionFailed, AccessDenied)):
        message = str(error)
        return message if message.startswith("⚠️") else f"⚠️ {message}"
    return GENERIC_ERROR_MESSAGE
