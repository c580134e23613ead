from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from psycopg import errors as pg_errors

if TYPE_CHECKING:
    from pathstore.storage.dbctx import CancelToken


class ErrorKind(str, Enum):
    """Stable error kinds callers can branch on."""

    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    CHECK_VIOLATION = "check_violation"
    TRANSIENT = "transient"
    CANCELED = "canceled"
    DRIVER = "driver"


class StorageError(Exception):
    """Base class for every error raised by the persistence layer."""

    kind: ErrorKind = ErrorKind.DRIVER

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


class RecordNotFound(StorageError):
    """Raised where a lookup must distinguish "absent" from "empty"."""

    kind = ErrorKind.NOT_FOUND


class InvalidArgument(StorageError):
    kind = ErrorKind.INVALID_ARGUMENT


class ConstraintViolation(StorageError):
    """Raised when a storage-layer uniqueness, FK or check constraint is violated."""

    kind = ErrorKind.CHECK_VIOLATION


class UniqueViolation(ConstraintViolation):
    kind = ErrorKind.UNIQUE_VIOLATION


class ForeignKeyViolation(ConstraintViolation):
    kind = ErrorKind.FOREIGN_KEY_VIOLATION


class CheckViolation(ConstraintViolation):
    kind = ErrorKind.CHECK_VIOLATION


class TransientError(StorageError):
    """Serialization failures, deadlocks and lost connections. Safe to retry."""

    kind = ErrorKind.TRANSIENT


class Canceled(StorageError):
    kind = ErrorKind.CANCELED


class DriverError(StorageError):
    kind = ErrorKind.DRIVER


def _constraint_detail(exc: BaseException) -> Dict[str, Any]:
    diag = getattr(exc, "diag", None)
    detail: Dict[str, Any] = {}
    if diag is None:
        return detail
    for attr in ("constraint_name", "table_name", "column_name"):
        value = getattr(diag, attr, None)
        if value:
            detail[attr.replace("_name", "")] = value
    return detail


def classify_error(
    exc: BaseException, token: Optional["CancelToken"] = None
) -> StorageError:
    """Map a driver exception onto the storage error taxonomy.

    The returned error is not raised; callers raise it ``from`` the original.
    """
    if isinstance(exc, StorageError):
        return exc
    detail = _constraint_detail(exc)
    message = str(exc).strip().splitlines()[0] if str(exc).strip() else type(exc).__name__

    if isinstance(exc, pg_errors.QueryCanceled) or (
        token is not None and token.done and isinstance(exc, pg_errors.OperationalError)
    ):
        reason = token.reason if token is not None and token.done else "query canceled"
        return Canceled(reason or "query canceled", detail)
    if isinstance(exc, pg_errors.UniqueViolation):
        return UniqueViolation(message, detail)
    if isinstance(exc, pg_errors.ForeignKeyViolation):
        return ForeignKeyViolation(message, detail)
    if isinstance(
        exc,
        (
            pg_errors.CheckViolation,
            pg_errors.NotNullViolation,
            pg_errors.ExclusionViolation,
        ),
    ):
        return CheckViolation(message, detail)
    if isinstance(
        exc,
        (
            pg_errors.SerializationFailure,
            pg_errors.DeadlockDetected,
            pg_errors.LockNotAvailable,
        ),
    ):
        return TransientError(message, detail)
    if isinstance(exc, pg_errors.IntegrityError):
        return ConstraintViolation(message, detail)
    if isinstance(exc, pg_errors.OperationalError):
        return TransientError(message, detail)
    return DriverError(message, detail)


__all__ = [
    "Canceled",
    "CheckViolation",
    "ConstraintViolation",
    "DriverError",
    "ErrorKind",
    "ForeignKeyViolation",
    "InvalidArgument",
    "RecordNotFound",
    "StorageError",
    "TransientError",
    "UniqueViolation",
    "classify_error",
]
