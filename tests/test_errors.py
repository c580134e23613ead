import pytest
from psycopg import errors as pg_errors

from pathstore.storage.dbctx import CancelToken
from pathstore.storage.errors import (
    Canceled,
    CheckViolation,
    DriverError,
    ErrorKind,
    ForeignKeyViolation,
    RecordNotFound,
    TransientError,
    UniqueViolation,
    classify_error,
)


class TestClassifyError:
    @pytest.mark.parametrize(
        "driver_exc, expected",
        [
            (pg_errors.UniqueViolation("duplicate key"), UniqueViolation),
            (pg_errors.ForeignKeyViolation("fk"), ForeignKeyViolation),
            (pg_errors.CheckViolation("check"), CheckViolation),
            (pg_errors.NotNullViolation("not null"), CheckViolation),
            (pg_errors.SerializationFailure("could not serialize"), TransientError),
            (pg_errors.DeadlockDetected("deadlock"), TransientError),
            (pg_errors.QueryCanceled("canceling statement"), Canceled),
            (pg_errors.UndefinedTable("no such table"), DriverError),
        ],
    )
    def test_driver_errors_map_to_kinds(self, driver_exc, expected):
        err = classify_error(driver_exc)
        assert isinstance(err, expected)

    def test_message_is_first_line(self):
        err = classify_error(pg_errors.UniqueViolation("duplicate key\nDETAIL: Key (x)=(1)"))
        assert err.message == "duplicate key"
        assert err.kind == ErrorKind.UNIQUE_VIOLATION

    def test_operational_error_after_cancel_is_canceled(self):
        token = CancelToken()
        token.cancel("client went away")
        err = classify_error(pg_errors.OperationalError("connection lost"), token)
        assert isinstance(err, Canceled)
        assert err.message == "client went away"

    def test_operational_error_without_cancel_is_transient(self):
        err = classify_error(pg_errors.OperationalError("connection lost"), CancelToken())
        assert isinstance(err, TransientError)
        assert err.retryable

    def test_storage_errors_pass_through(self):
        original = RecordNotFound("missing")
        assert classify_error(original) is original
        assert not original.retryable
