from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from psycopg.types.json import Jsonb

from pathstore.logging import redact_params
from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.errors import InvalidArgument, StorageError
from pathstore.storage.models import NIL_ID, is_zero_id, new_id, utcnow
from pathstore.storage.store import QueryResult, StoreHandle

R = TypeVar("R")

Clock = Callable[[], datetime]


def clean_ids(ids: Optional[Iterable[Optional[uuid.UUID]]]) -> List[uuid.UUID]:
    """Drop zero ids and duplicates, keeping first-seen order."""
    if not ids:
        return []
    return sql.dedupe(i for i in ids if not is_zero_id(i))


def clean_strings(values: Optional[Iterable[Optional[str]]]) -> List[str]:
    if not values:
        return []
    return sql.dedupe(v.strip() for v in values if v and v.strip())


class EntityRepo(Generic[R]):
    """Shared create/read/upsert/delete machinery for one table.

    Subclasses declare the table, the row dataclass, the natural key and the
    columns an upsert may overwrite. Every public method issues at most one
    statement on the executor carried by ``dbc``. Repos without a natural key
    treat ``upsert`` as a no-op.
    """

    table: ClassVar[str] = ""
    model: ClassVar[Type[Any]]
    natural_key: ClassVar[Tuple[str, ...]] = ()
    # natural-key columns allowed to be NULL; their unique index must treat
    # NULLs as equal so ON CONFLICT can infer it
    nullable_key: ClassVar[FrozenSet[str]] = frozenset()
    upsert_columns: ClassVar[Tuple[str, ...]] = ()
    json_columns: ClassVar[FrozenSet[str]] = frozenset()
    soft_delete: ClassVar[bool] = True
    default_order: ClassVar[Tuple[str, ...]] = ("created_at", "id")

    columns: ClassVar[Tuple[str, ...]] = ()
    _nullable_ids: ClassVar[FrozenSet[str]] = frozenset()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        model = cls.__dict__.get("model")
        if model is None:
            return
        fields = dataclasses.fields(model)
        cls.columns = tuple(f.name for f in fields)
        cls._nullable_ids = frozenset(
            f.name
            for f in fields
            if f.default is None and "UUID" in str(f.type)
        )

    def __init__(self, store: StoreHandle, logger: Any, *, clock: Optional[Clock] = None) -> None:
        if store is None:
            raise ValueError("store handle is required")
        if logger is None:
            raise ValueError("logger is required")
        self.store = store
        self.logger = logger.bind(repo=type(self).__name__)
        self.clock = clock or utcnow

    # statement plumbing

    def _exec(self, dbc: DBContext, op: str, query: str, params: Any = None) -> QueryResult:
        try:
            return self.store.execute(dbc, query, params)
        except StorageError as exc:
            self.logger.warning(
                "repo_statement_failed",
                op=op,
                table=self.table,
                kind=exc.kind.value,
                error=exc.message,
                params=redact_params(params),
            )
            raise

    def _adapt(self, column: str, value: Any) -> Any:
        if column in self.json_columns and value is not None:
            return Jsonb(value)
        if column in self._nullable_ids and value == NIL_ID:
            return None
        if isinstance(value, Enum):
            return value.value
        return value

    def _values(self, row: Any, columns: Sequence[str]) -> List[Any]:
        return [self._adapt(c, getattr(row, c)) for c in columns]

    def _from_row(self, data: Mapping[str, Any]) -> R:
        return self.model(**{c: data[c] for c in self.columns if c in data})

    def _stamp(self, row: Any, now: datetime) -> None:
        if is_zero_id(row.id):
            row.id = new_id()
        row.updated_at = now
        if row.created_at is None:
            row.created_at = now

    def _live(self, clauses: List[str], unscoped: bool = False) -> List[str]:
        if self.soft_delete and not unscoped:
            return clauses + [sql.LIVE]
        return clauses

    def _select(
        self,
        dbc: DBContext,
        op: str,
        clauses: Sequence[str],
        params: Sequence[Any],
        order: Optional[Sequence[str]] = None,
        *,
        limit: Optional[int] = None,
        unscoped: bool = False,
    ) -> List[R]:
        query = sql.select(
            self.table,
            self.columns,
            self._live(list(clauses), unscoped),
            self.default_order if order is None else order,
            limit=limit is not None,
        )
        args = list(params)
        if limit is not None:
            args.append(limit)
        return [self._from_row(r) for r in self._exec(dbc, op, query, args).rows]

    def _get_by_column(
        self,
        dbc: DBContext,
        op: str,
        column: str,
        ids: Optional[Iterable[Optional[uuid.UUID]]],
        order: Optional[Sequence[str]] = None,
    ) -> List[R]:
        ids = clean_ids(ids)
        if not ids:
            return []
        return self._select(dbc, op, [sql.any_of(column)], [ids], order)

    # natural-key validation

    def is_valid(self, row: Any) -> bool:
        """Whether ``row`` carries every natural-key value an upsert needs."""
        if row is None:
            return False
        for column in self.natural_key:
            if column in self.nullable_key:
                continue
            value = getattr(row, column)
            if isinstance(value, uuid.UUID):
                if value == NIL_ID:
                    return False
            elif isinstance(value, str):
                if not value.strip():
                    return False
            elif value is None:
                return False
        return True

    # create

    def create(self, dbc: DBContext, rows: Optional[Sequence[Optional[R]]]) -> List[R]:
        """Insert every row in one statement; a natural-key collision fails the batch."""
        rows = [r for r in rows or [] if r is not None]
        if not rows:
            return []
        now = self.clock()
        params: List[Any] = []
        for row in rows:
            self._stamp(row, now)
            params.extend(self._values(row, self.columns))
        query = sql.insert(self.table, self.columns, len(rows))
        self._exec(dbc, "create", query, params)
        return rows

    def create_ignore_duplicates(
        self, dbc: DBContext, rows: Optional[Sequence[Optional[R]]]
    ) -> int:
        """Insert rows whose natural key is free; returns how many were inserted."""
        rows = [r for r in rows or [] if r is not None and self.is_valid(r)]
        if not rows:
            return 0
        now = self.clock()
        params: List[Any] = []
        for row in rows:
            self._stamp(row, now)
            params.extend(self._values(row, self.columns))
        if self.natural_key:
            conflict: Sequence[str] = self.natural_key
            conflict_where = sql.LIVE if self.soft_delete else None
        else:
            conflict, conflict_where = ("id",), None
        query = sql.insert(
            self.table,
            self.columns,
            len(rows),
            conflict=conflict,
            conflict_where=conflict_where,
        )
        return self._exec(dbc, "create_ignore_duplicates", query, params).rowcount

    # read

    def get_by_ids(
        self,
        dbc: DBContext,
        ids: Optional[Iterable[Optional[uuid.UUID]]],
        *,
        unscoped: bool = False,
    ) -> List[R]:
        ids = clean_ids(ids)
        if not ids:
            return []
        return self._select(
            dbc, "get_by_ids", [sql.any_of("id")], [ids], unscoped=unscoped
        )

    def get_by_id(
        self, dbc: DBContext, id: Optional[uuid.UUID], *, unscoped: bool = False
    ) -> Optional[R]:
        if is_zero_id(id):
            return None
        rows = self.get_by_ids(dbc, [id], unscoped=unscoped)
        return rows[0] if rows else None

    # write

    def update(self, dbc: DBContext, row: Optional[R]) -> None:
        """Overwrite every column of the live row with ``row.id``; ``created_at`` is kept."""
        if row is None or is_zero_id(row.id):
            return
        row.updated_at = self.clock()
        columns = [c for c in self.columns if c not in ("id", "created_at")]
        query = sql.update(self.table, columns, self._live([sql.eq("id")]))
        self._exec(dbc, "update", query, self._values(row, columns) + [row.id])

    def update_fields(
        self,
        dbc: DBContext,
        id: Optional[uuid.UUID],
        updates: Optional[Mapping[str, Any]],
        *,
        unscoped: bool = False,
    ) -> None:
        """Set the named columns on one row, stamping ``updated_at`` unless given.

        ``unscoped=True`` also reaches soft-deleted rows, which is how a row is
        restored (``{"deleted_at": None}``).
        """
        if is_zero_id(id):
            return
        fields: Dict[str, Any] = dict(updates or {})
        unknown = sorted(k for k in fields if k not in self.columns or k == "id")
        if unknown:
            raise InvalidArgument(
                f"unknown column(s) for {self.table}: {', '.join(unknown)}",
                {"table": self.table, "columns": unknown},
            )
        if "updated_at" in self.columns:
            fields.setdefault("updated_at", self.clock())
        columns = list(fields)
        query = sql.update(self.table, columns, self._live([sql.eq("id")], unscoped))
        params = [self._adapt(c, fields[c]) for c in columns] + [id]
        self._exec(dbc, "update_fields", query, params)

    def upsert(self, dbc: DBContext, row: Optional[R]) -> None:
        """Insert ``row`` or overwrite the whitelisted columns of the live row
        sharing its natural key. ``id`` and ``created_at`` of the stored row
        are written back onto ``row``.
        """
        if not self.natural_key or not self.is_valid(row):
            return
        self._stamp(row, self.clock())
        query = sql.insert(
            self.table,
            self.columns,
            1,
            conflict=self.natural_key,
            conflict_where=sql.LIVE if self.soft_delete else None,
            update_columns=self._update_set(),
            returning=("id", "created_at"),
        )
        result = self._exec(dbc, "upsert", query, self._values(row, self.columns))
        stored = result.first()
        if stored:
            row.id = stored["id"]
            row.created_at = stored["created_at"]

    def _update_set(self) -> Tuple[str, ...]:
        return tuple(c for c in self.upsert_columns if c != "updated_at") + ("updated_at",)

    # delete

    def _soft_delete_where(
        self, dbc: DBContext, op: str, clauses: Sequence[str], params: Sequence[Any]
    ) -> int:
        if not self.soft_delete:
            raise InvalidArgument(f"{self.table} rows cannot be soft-deleted")
        query = sql.update(self.table, ["deleted_at"], list(clauses) + [sql.LIVE])
        return self._exec(dbc, op, query, [self.clock()] + list(params)).rowcount

    def _full_delete_where(
        self, dbc: DBContext, op: str, clauses: Sequence[str], params: Sequence[Any]
    ) -> int:
        return self._exec(dbc, op, sql.delete(self.table, clauses), list(params)).rowcount

    def _soft_delete_by_column(
        self, dbc: DBContext, op: str, column: str, ids: Optional[Iterable[Optional[uuid.UUID]]]
    ) -> int:
        ids = clean_ids(ids)
        if not ids:
            return 0
        return self._soft_delete_where(dbc, op, [sql.any_of(column)], [ids])

    def _full_delete_by_column(
        self, dbc: DBContext, op: str, column: str, ids: Optional[Iterable[Optional[uuid.UUID]]]
    ) -> int:
        ids = clean_ids(ids)
        if not ids:
            return 0
        return self._full_delete_where(dbc, op, [sql.any_of(column)], [ids])

    def soft_delete_by_ids(self, dbc: DBContext, ids: Optional[Iterable[Optional[uuid.UUID]]]) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_ids", "id", ids)

    def full_delete_by_ids(self, dbc: DBContext, ids: Optional[Iterable[Optional[uuid.UUID]]]) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_ids", "id", ids)


__all__ = ["Clock", "EntityRepo", "clean_ids", "clean_strings"]
