from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar, Union

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from pathstore.config import Isolation, Settings
from pathstore.logging import get_logger
from pathstore.storage.dbctx import CancelToken, DBContext
from pathstore.storage.errors import InvalidArgument, StorageError, classify_error
from pathstore.storage.schema import REQUIRED_TABLES, load_schema_sql

T = TypeVar("T")

Params = Union[Sequence[Any], Dict[str, Any], None]


@dataclass
class QueryResult:
    """Materialized result of one statement.

    Rows are fetched before the connection goes back to the pool, so a result
    stays valid after the executor is done with it.
    """

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


@contextmanager
def _driver_cancel(conn: psycopg.Connection, token: CancelToken) -> Iterator[None]:
    """Abort the in-flight statement when the token is canceled or expires."""
    unregister = token.on_cancel(conn.cancel)
    timer: Optional[threading.Timer] = None
    remaining = token.remaining()
    if remaining is not None:
        timer = threading.Timer(remaining, conn.cancel)
        timer.daemon = True
        timer.start()
    try:
        yield
    finally:
        unregister()
        if timer is not None:
            timer.cancel()


class Executor:
    """Runs a single statement. Pool and transaction executors share this contract."""

    def execute(self, token: CancelToken, query: str, params: Params = None) -> QueryResult:
        raise NotImplementedError

    @staticmethod
    def _run(
        conn: psycopg.Connection, token: CancelToken, query: str, params: Params
    ) -> QueryResult:
        token.raise_if_done()
        with _driver_cancel(conn, token):
            cur = conn.execute(query, params)
            rows = cur.fetchall() if cur.description else []
            return QueryResult(rows=list(rows), rowcount=cur.rowcount)


class PoolExecutor(Executor):
    """Borrows a pooled connection per statement; each statement commits on its own."""

    def __init__(self, pool: ConnectionPool, acquire_timeout: float = 30.0) -> None:
        self.pool = pool
        self.acquire_timeout = acquire_timeout

    def _timeout(self, token: CancelToken) -> float:
        remaining = token.remaining()
        if remaining is None:
            return self.acquire_timeout
        return min(self.acquire_timeout, remaining)

    def execute(self, token: CancelToken, query: str, params: Params = None) -> QueryResult:
        token.raise_if_done()
        try:
            with self.pool.connection(timeout=self._timeout(token)) as conn:
                return self._run(conn, token, query, params)
        except psycopg.Error as exc:
            raise classify_error(exc, token) from exc


class TxExecutor(Executor):
    """Executor pinned to the connection of an open transaction."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn
        self.closed = False

    def execute(self, token: CancelToken, query: str, params: Params = None) -> QueryResult:
        if self.closed:
            raise InvalidArgument("transaction already finished")
        try:
            return self._run(self.conn, token, query, params)
        except psycopg.Error as exc:
            raise classify_error(exc, token) from exc


class StoreHandle:
    """Long-lived connection pool plus the transaction runner built on it."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 30.0,
        statement_timeout_ms: int = 0,
        default_isolation: Isolation = Isolation.READ_COMMITTED,
        pool: Optional[ConnectionPool] = None,
    ) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.default_isolation = Isolation(default_isolation)
        self.timeout = timeout
        if pool is None:
            kwargs: Dict[str, Any] = {"row_factory": dict_row, "autocommit": False}
            if statement_timeout_ms:
                kwargs["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"
            pool = ConnectionPool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                timeout=timeout,
                kwargs=kwargs,
                open=True,
            )
        self.pool = pool
        self.pool_executor = PoolExecutor(self.pool, acquire_timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreHandle":
        return cls(
            settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            timeout=settings.pool_timeout,
            statement_timeout_ms=settings.statement_timeout_ms,
            default_isolation=settings.default_isolation,
        )

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "StoreHandle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def executor_for(self, dbc: DBContext) -> Executor:
        return dbc.tx if dbc.tx is not None else self.pool_executor

    def execute(self, dbc: DBContext, query: str, params: Params = None) -> QueryResult:
        return self.executor_for(dbc).execute(dbc.token, query, params)

    def _isolation(self, isolation: Optional[Union[Isolation, str]]) -> Isolation:
        if isolation is None:
            return self.default_isolation
        try:
            return Isolation(isolation)
        except ValueError:
            raise InvalidArgument(
                f"unknown isolation level: {isolation!r}", {"isolation": str(isolation)}
            ) from None

    @contextmanager
    def transaction(
        self,
        dbc: Optional[DBContext] = None,
        *,
        isolation: Optional[Union[Isolation, str]] = None,
        read_only: bool = False,
    ) -> Iterator[DBContext]:
        """Open a transaction and yield a context bound to it.

        If ``dbc`` already carries a transaction it is reused as-is; isolation
        and read-only options only apply to the outermost call.
        """
        dbc = dbc or DBContext.background()
        if dbc.tx is not None:
            yield dbc
            return

        dbc.token.raise_if_done()
        level = self._isolation(isolation)
        mode = f"ISOLATION LEVEL {level.sql}" + (" READ ONLY" if read_only else "")
        try:
            with self.pool.connection(timeout=self.pool_executor._timeout(dbc.token)) as conn:
                with conn.transaction():
                    tx = TxExecutor(conn)
                    try:
                        tx.execute(dbc.token, f"SET TRANSACTION {mode}")
                        remaining = dbc.token.remaining()
                        if remaining is not None:
                            tx.execute(
                                dbc.token,
                                "SELECT set_config('statement_timeout', %s, true)",
                                (str(max(1, int(remaining * 1000))),),
                            )
                        yield dbc.with_tx(tx)
                        # A token canceled mid-flight must not commit.
                        dbc.token.raise_if_done()
                    finally:
                        tx.closed = True
        except psycopg.Error as exc:
            err = classify_error(exc, dbc.token)
            self.logger.warning(
                "tx_commit_failed", kind=err.kind.value, error=err.message
            )
            raise err from exc
        except StorageError as exc:
            self.logger.info("tx_rollback", kind=exc.kind.value, error=exc.message)
            raise
        except Exception as exc:
            self.logger.info("tx_rollback", error_type=type(exc).__name__)
            raise

    def run_in_tx(
        self,
        dbc: Optional[DBContext],
        fn: Callable[[DBContext], T],
        *,
        isolation: Optional[Union[Isolation, str]] = None,
        read_only: bool = False,
    ) -> T:
        """Run ``fn`` inside a transaction; commit on return, roll back on raise."""
        with self.transaction(dbc, isolation=isolation, read_only=read_only) as tx_dbc:
            return fn(tx_dbc)

    def verify_schema(self, dbc: Optional[DBContext] = None) -> None:
        """Ensure the kernel tables exist before serving requests."""
        dbc = dbc or DBContext.background()
        missing_tables = []
        for table in REQUIRED_TABLES:
            row = self.execute(
                dbc, "SELECT to_regclass(%s) AS oid", (table,)
            ).first()
            if not row or not row.get("oid"):
                missing_tables.append(table)
        if missing_tables:
            raise RuntimeError(
                "Missing required Postgres tables: {}. Run scripts/apply_schema.py to install the schema.".format(
                    ", ".join(sorted(missing_tables))
                )
            )

    def apply_schema(self, dbc: Optional[DBContext] = None) -> None:
        """Execute the bundled DDL. Statements are idempotent."""
        dbc = dbc or DBContext.background()
        self.execute(dbc, load_schema_sql())
        self.logger.info("schema_applied", tables=len(REQUIRED_TABLES))


__all__ = [
    "Executor",
    "PoolExecutor",
    "QueryResult",
    "StoreHandle",
    "TxExecutor",
]
