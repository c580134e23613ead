"""Statement builders shared by every repo.

Column and table names are quoted; values always travel as ``%s`` parameters.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

LIVE = "deleted_at IS NULL"


def ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def column_list(columns: Iterable[str]) -> str:
    return ", ".join(ident(c) for c in columns)


def placeholders(count: int) -> str:
    return "(" + ", ".join(["%s"] * count) + ")"


def null_safe_eq(column: str) -> str:
    """Equality that treats two NULLs as equal."""
    return f"{ident(column)} IS NOT DISTINCT FROM %s"


def eq(column: str) -> str:
    return f"{ident(column)} = %s"


def any_of(column: str) -> str:
    """Membership test against a single array parameter."""
    return f"{ident(column)} = ANY(%s)"


def order_by(order: Sequence[str]) -> str:
    """Render ``("created_at", "-weight")`` as ``ORDER BY created_at ASC, weight DESC``."""
    if not order:
        return ""
    parts = []
    for spec in order:
        if spec.startswith("-"):
            parts.append(f"{ident(spec[1:])} DESC")
        else:
            parts.append(f"{ident(spec)} ASC")
    return " ORDER BY " + ", ".join(parts)


def where(clauses: Sequence[str]) -> str:
    return " WHERE " + " AND ".join(clauses) if clauses else ""


def select(
    table: str,
    columns: Sequence[str],
    clauses: Sequence[str],
    order: Sequence[str] = (),
    *,
    limit: bool = False,
) -> str:
    query = f"SELECT {column_list(columns)} FROM {ident(table)}{where(clauses)}{order_by(order)}"
    if limit:
        query += " LIMIT %s"
    return query


def insert(
    table: str,
    columns: Sequence[str],
    row_count: int,
    *,
    conflict: Optional[Sequence[str]] = None,
    conflict_where: Optional[str] = None,
    update_columns: Optional[Sequence[str]] = None,
    returning: Optional[Sequence[str]] = None,
) -> str:
    """Build a multi-row INSERT.

    With ``conflict`` and no ``update_columns`` duplicates are skipped
    (``DO NOTHING``); with ``update_columns`` the listed columns are
    overwritten from ``EXCLUDED``.
    """
    values = ", ".join([placeholders(len(columns))] * row_count)
    query = f"INSERT INTO {ident(table)} ({column_list(columns)}) VALUES {values}"
    if conflict is not None:
        target = f" ON CONFLICT ({column_list(conflict)})"
        if conflict_where:
            target += f" WHERE {conflict_where}"
        if update_columns:
            sets = ", ".join(f"{ident(c)} = EXCLUDED.{ident(c)}" for c in update_columns)
            query += f"{target} DO UPDATE SET {sets}"
        else:
            query += f"{target} DO NOTHING"
    if returning:
        query += f" RETURNING {column_list(returning)}"
    return query


def update(table: str, columns: Sequence[str], clauses: Sequence[str]) -> str:
    sets = ", ".join(f"{ident(c)} = %s" for c in columns)
    return f"UPDATE {ident(table)} SET {sets}{where(clauses)}"


def delete(table: str, clauses: Sequence[str]) -> str:
    return f"DELETE FROM {ident(table)}{where(clauses)}"


def dedupe(values: Iterable) -> List:
    """Drop duplicates while keeping first-seen order."""
    seen = set()
    out = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


__all__ = [
    "LIVE",
    "any_of",
    "column_list",
    "dedupe",
    "delete",
    "eq",
    "ident",
    "insert",
    "null_safe_eq",
    "order_by",
    "placeholders",
    "select",
    "update",
    "where",
]
