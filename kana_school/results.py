"""Tagged results returned by the account, quiz and contact services.

Expected failures (bad input, wrong password, someone else's session) are
returned as ``Err`` values instead of raised, so the HTTP layer can map them to
status codes in one place.
"""

import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(enum.Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"
    STORAGE = "storage"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[Any], Err]


def validation_error(message: str) -> Err:
    return Err(ErrorKind.VALIDATION, message)


def not_found(message: str) -> Err:
    return Err(ErrorKind.NOT_FOUND, message)


def storage_error(message: str) -> Err:
    return Err(ErrorKind.STORAGE, message)
