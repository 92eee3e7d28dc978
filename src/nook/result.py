"""Tagged success/failure values returned by every tree operation."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Stable failure categories surfaced to callers."""

    INVALID_NAME = "invalid_name"
    INVALID_QUERY = "invalid_query"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    PARENT_NOT_FOUND = "parent_not_found"
    SELF_MOVE = "self_move"
    DESCENDANT_MOVE = "descendant_move"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True)
class Failure:
    """A typed failure with a human-readable message."""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: Failure

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message


Result = Ok[T] | Err


def err(kind: ErrorKind, message: str) -> Err:
    """Build an ``Err`` for the given kind."""
    return Err(Failure(kind, message))


def not_found(node_id: str) -> Err:
    return err(ErrorKind.NOT_FOUND, f"Item with id {node_id} not found")


def version_conflict(node_id: str, expected: int, found: int) -> Err:
    return err(
        ErrorKind.CONFLICT,
        f"Item {node_id} was modified concurrently (expected version {expected}, found {found})",
    )
