"""Snapshot-style rows.

These tables carry no ``deleted_at``: a row is overwritten in place by its
natural key and removed only by a full delete.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import LibraryTaxonomySnapshot, NodeDocVariant, is_zero_id
from pathstore.storage.repo import EntityRepo


class NodeDocVariantRepo(EntityRepo[NodeDocVariant]):
    table = "node_doc_variant"
    model = NodeDocVariant
    natural_key = ("snapshot_id",)
    upsert_columns = (
        "user_id",
        "path_id",
        "path_node_id",
        "base_doc_id",
        "variant_kind",
        "policy_version",
        "schema_version",
        "trace_id",
        "doc_json",
        "doc_text",
        "content_hash",
        "sources_hash",
        "status",
        "expires_at",
    )
    json_columns = frozenset({"doc_json"})
    soft_delete = False

    def get_by_snapshot_id(self, dbc: DBContext, snapshot_id: Optional[str]) -> Optional[NodeDocVariant]:
        snapshot_id = (snapshot_id or "").strip()
        if not snapshot_id:
            return None
        rows = self._select(
            dbc, "get_by_snapshot_id", [sql.eq("snapshot_id")], [snapshot_id], limit=1
        )
        return rows[0] if rows else None

    def list_by_user_and_node(
        self,
        dbc: DBContext,
        user_id: Optional[uuid.UUID],
        path_node_id: Optional[uuid.UUID],
        limit: int = 0,
    ) -> List[NodeDocVariant]:
        if is_zero_id(user_id) or is_zero_id(path_node_id):
            return []
        return self._select(
            dbc,
            "list_by_user_and_node",
            [sql.eq("user_id"), sql.eq("path_node_id")],
            [user_id, path_node_id],
            ("-created_at", "-id"),
            limit=limit if limit > 0 else None,
        )

    def get_latest_by_user_and_node(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], path_node_id: Optional[uuid.UUID]
    ) -> Optional[NodeDocVariant]:
        rows = self.list_by_user_and_node(dbc, user_id, path_node_id, limit=1)
        return rows[0] if rows else None


class LibraryTaxonomySnapshotRepo(EntityRepo[LibraryTaxonomySnapshot]):
    table = "library_taxonomy_snapshot"
    model = LibraryTaxonomySnapshot
    natural_key = ("user_id",)
    upsert_columns = ("version", "snapshot_json")
    json_columns = frozenset({"snapshot_json"})
    soft_delete = False

    def get_by_user_id(
        self, dbc: DBContext, user_id: Optional[uuid.UUID]
    ) -> Optional[LibraryTaxonomySnapshot]:
        rows = self._get_by_column(dbc, "get_by_user_id", "user_id", [user_id])
        return rows[0] if rows else None


__all__ = ["LibraryTaxonomySnapshotRepo", "NodeDocVariantRepo"]
