"""Errors and key-value operation kinds of the transparent client."""

from __future__ import annotations

from enum import Enum


class NTSError(Exception):
    """Raised when the transparent client cannot complete a request."""


class NotFoundError(NTSError):
    """A message, key or object is not present."""


class KeyDeletedError(NTSError):
    """A key-value entry exists only as a delete or purge marker."""


class KeyValueOp(Enum):
    """The operation a key-value revision records."""

    PUT = "PUT"
    DELETE = "DEL"
    PURGE = "PURGE"

    def __str__(self) -> str:
        return self.value


def is_not_found(err: BaseException | None) -> bool:
    """Tell whether ``err`` reports that a message, key or object is missing."""
    if err is None:
        return False
    if isinstance(err, NotFoundError):
        return True
    return "not found" in str(err)


def is_key_deleted(err: BaseException | None) -> bool:
    """Tell whether ``err`` reports a deleted key."""
    return isinstance(err, KeyDeletedError)


def parse_kv_op(value: str) -> KeyValueOp:
    """Map a sidecar operation name to a :class:`KeyValueOp`; unknown means put."""
    if value == "DEL":
        return KeyValueOp.DELETE
    if value == "PURGE":
        return KeyValueOp.PURGE
    return KeyValueOp.PUT