from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Iterable, List, Optional, Union

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import (
    Path,
    PathNode,
    PathNodeActivity,
    ViewResult,
    is_zero_id,
)
from pathstore.storage.repo import EntityRepo, clean_strings

IDs = Optional[Iterable[Optional[uuid.UUID]]]


class PathRepo(EntityRepo[Path]):
    table = "path"
    model = Path
    json_columns = frozenset({"metadata"})
    # used when record_view is called without a window
    view_dedupe_window: Optional[timedelta] = None

    def list_by_user(self, dbc: DBContext, user_id: Optional[uuid.UUID]) -> List[Path]:
        """Paths owned by ``user_id`` (``None`` selects unowned paths), newest first."""
        return self._select(
            dbc,
            "list_by_user",
            [sql.null_safe_eq("user_id")],
            [None if is_zero_id(user_id) else user_id],
            ("-created_at", "id"),
        )

    def list_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> List[Path]:
        return self._get_by_column(
            dbc, "list_by_user_ids", "user_id", user_ids, ("user_id", "-created_at", "id")
        )

    def list_by_status(self, dbc: DBContext, statuses: Optional[Iterable[str]]) -> List[Path]:
        statuses = clean_strings(statuses)
        if not statuses:
            return []
        return self._select(
            dbc, "list_by_status", [sql.any_of("status")], [statuses], ("-created_at", "id")
        )

    def soft_delete_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_user_ids", "user_id", user_ids)

    def full_delete_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_user_ids", "user_id", user_ids)

    def record_view(
        self,
        dbc: DBContext,
        user_id: Optional[uuid.UUID],
        path_id: Optional[uuid.UUID],
        dedupe_window: Union[timedelta, float, int, None] = None,
    ) -> ViewResult:
        """Count a view of ``path_id`` by its owner.

        ``view_count`` only moves when the previous view is older than the
        dedupe window; ``last_viewed_at`` always moves to now. A missing,
        deleted or foreign path yields ``ViewResult(0, None, False)``.
        Without a window the repo default applies; a zero or negative
        window counts every view.
        """
        if is_zero_id(user_id) or is_zero_id(path_id):
            return ViewResult()
        if dedupe_window is None:
            dedupe_window = self.view_dedupe_window
        if isinstance(dedupe_window, (int, float)):
            dedupe_window = timedelta(seconds=dedupe_window)
        now = self.clock()
        cutoff = None
        if dedupe_window is not None and dedupe_window > timedelta(0):
            cutoff = now - dedupe_window
        query = (
            "UPDATE path SET "
            "view_count = CASE "
            "WHEN last_viewed_at IS NULL OR %s::timestamptz IS NULL OR last_viewed_at <= %s::timestamptz "
            "THEN view_count + 1 ELSE view_count END, "
            "last_viewed_at = %s "
            "WHERE id = %s AND user_id = %s AND deleted_at IS NULL "
            "RETURNING view_count, last_viewed_at"
        )
        row = self._exec(
            dbc, "record_view", query, [cutoff, cutoff, now, path_id, user_id]
        ).first()
        if row is None:
            return ViewResult()
        return ViewResult(
            view_count=row["view_count"],
            last_viewed_at=row["last_viewed_at"],
            applied=True,
        )


class PathNodeRepo(EntityRepo[PathNode]):
    table = "path_node"
    model = PathNode
    natural_key = ("path_id", "index")
    upsert_columns = ("title", "parent_node_id", "gating", "metadata", "content_json")
    json_columns = frozenset({"gating", "metadata", "content_json"})

    def get_by_path_ids(self, dbc: DBContext, path_ids: IDs) -> List[PathNode]:
        return self._get_by_column(
            dbc, "get_by_path_ids", "path_id", path_ids, ("path_id", "index", "id")
        )

    def get_by_path_and_index(
        self, dbc: DBContext, path_id: Optional[uuid.UUID], index: int
    ) -> Optional[PathNode]:
        if is_zero_id(path_id):
            return None
        rows = self._select(
            dbc,
            "get_by_path_and_index",
            [sql.eq("path_id"), sql.eq("index")],
            [path_id, index],
            limit=1,
        )
        return rows[0] if rows else None

    def soft_delete_by_path_ids(self, dbc: DBContext, path_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_path_ids", "path_id", path_ids)

    def full_delete_by_path_ids(self, dbc: DBContext, path_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_path_ids", "path_id", path_ids)


class PathNodeActivityRepo(EntityRepo[PathNodeActivity]):
    table = "path_node_activity"
    model = PathNodeActivity
    natural_key = ("path_node_id", "activity_id")
    upsert_columns = ("rank", "is_primary")

    def get_by_path_node_ids(self, dbc: DBContext, node_ids: IDs) -> List[PathNodeActivity]:
        return self._get_by_column(
            dbc,
            "get_by_path_node_ids",
            "path_node_id",
            node_ids,
            ("path_node_id", "-is_primary", "rank", "id"),
        )

    def get_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> List[PathNodeActivity]:
        return self._get_by_column(
            dbc, "get_by_activity_ids", "activity_id", activity_ids, ("activity_id", "created_at", "id")
        )

    def soft_delete_by_path_node_ids(self, dbc: DBContext, node_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_path_node_ids", "path_node_id", node_ids
        )

    def soft_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_activity_ids", "activity_id", activity_ids
        )

    def full_delete_by_path_node_ids(self, dbc: DBContext, node_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_path_node_ids", "path_node_id", node_ids
        )

    def full_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_activity_ids", "activity_id", activity_ids
        )


__all__ = ["PathNodeActivityRepo", "PathNodeRepo", "PathRepo"]
