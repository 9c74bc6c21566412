"""Error kinds and tagged outcomes shared by the sync engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class SyncErrorKind(str, Enum):
    PRECONDITION_FAILED = "precondition_failed"
    CONNECTIVITY_FAILURE = "connectivity_failure"
    ENCRYPTION_FAILURE = "encryption_failure"
    MALFORMED_RESPONSE = "malformed_response"
    SERVER_REJECTED = "server_rejected"
    LOCAL_IO_FAILURE = "local_io_failure"
    INTERNAL_ERROR = "internal_error"

    @property
    def retryable(self) -> bool:
        return self is SyncErrorKind.CONNECTIVITY_FAILURE


class SyncError(Exception):
    """Base error raised by sync collaborators.

    Collaborators raise; the executor converts raised errors into an
    :class:`Outcome` at the attempt boundary.
    """

    kind = SyncErrorKind.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConnectivityError(SyncError):
    kind = SyncErrorKind.CONNECTIVITY_FAILURE


class EncryptionError(SyncError):
    kind = SyncErrorKind.ENCRYPTION_FAILURE


class MalformedResponseError(SyncError):
    kind = SyncErrorKind.MALFORMED_RESPONSE


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Tagged result: either ``value`` or an error ``kind`` with a message."""

    value: T | None = None
    kind: SyncErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: SyncErrorKind, message: str) -> "Outcome[T]":
        return cls(kind=kind, message=message)

    @classmethod
    def from_error(cls, exc: SyncError) -> "Outcome[T]":
        return cls(kind=exc.kind, message=exc.message)
