from __future__ import annotations

import uuid
from typing import Iterable, List, Optional

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import (
    Concept,
    ConceptCluster,
    ConceptClusterMember,
    ConceptEdge,
    ConceptEvidence,
    clean_id,
)
from pathstore.storage.repo import EntityRepo, clean_ids, clean_strings

IDs = Optional[Iterable[Optional[uuid.UUID]]]

_SCOPE_CLAUSES = [sql.eq("scope"), sql.null_safe_eq("scope_id")]


class ConceptRepo(EntityRepo[Concept]):
    """Concepts keyed by ``(scope, scope_id, key)`` where ``scope_id`` may be NULL.

    A NULL ``scope_id`` is a scope of its own: lookups and upserts match it
    with ``IS NOT DISTINCT FROM`` and never leak rows of a concrete scope.
    """

    table = "concept"
    model = Concept
    natural_key = ("scope", "scope_id", "key")
    nullable_key = frozenset({"scope_id"})
    upsert_columns = (
        "name",
        "summary",
        "parent_id",
        "depth",
        "sort_index",
        "key_points",
        "vector_id",
        "metadata",
    )
    json_columns = frozenset({"key_points", "metadata"})
    tree_order = ("depth", "sort_index", "key", "id")

    def get_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> List[Concept]:
        if not scope:
            return []
        return self._select(
            dbc, "get_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)], self.tree_order
        )

    def get_by_scope_and_keys(
        self,
        dbc: DBContext,
        scope: str,
        scope_id: Optional[uuid.UUID],
        keys: Optional[Iterable[str]],
    ) -> List[Concept]:
        keys = clean_strings(keys)
        if not scope or not keys:
            return []
        return self._select(
            dbc,
            "get_by_scope_and_keys",
            _SCOPE_CLAUSES + [sql.any_of("key")],
            [scope, clean_id(scope_id), keys],
            self.tree_order,
        )

    def get_by_scope_and_parent(
        self,
        dbc: DBContext,
        scope: str,
        scope_id: Optional[uuid.UUID],
        parent_id: Optional[uuid.UUID],
    ) -> List[Concept]:
        """Direct children of ``parent_id``; ``None`` returns the scope's roots."""
        if not scope:
            return []
        return self._select(
            dbc,
            "get_by_scope_and_parent",
            _SCOPE_CLAUSES + [sql.null_safe_eq("parent_id")],
            [scope, clean_id(scope_id), clean_id(parent_id)],
            ("sort_index", "key", "id"),
        )

    def get_by_parent_ids(self, dbc: DBContext, parent_ids: IDs) -> List[Concept]:
        return self._get_by_column(
            dbc, "get_by_parent_ids", "parent_id", parent_ids, ("parent_id", "sort_index", "key", "id")
        )

    def get_by_vector_ids(self, dbc: DBContext, vector_ids: Optional[Iterable[str]]) -> List[Concept]:
        vector_ids = clean_strings(vector_ids)
        if not vector_ids:
            return []
        return self._select(
            dbc, "get_by_vector_ids", [sql.any_of("vector_id")], [vector_ids], ("vector_id", "id")
        )

    def upsert_by_scope_and_key(self, dbc: DBContext, row: Optional[Concept]) -> None:
        self.upsert(dbc, row)

    def soft_delete_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> int:
        if not scope:
            return 0
        return self._soft_delete_where(
            dbc, "soft_delete_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)]
        )

    def full_delete_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> int:
        if not scope:
            return 0
        return self._full_delete_where(
            dbc, "full_delete_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)]
        )

    def soft_delete_by_parent_ids(self, dbc: DBContext, parent_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_parent_ids", "parent_id", parent_ids)

    def full_delete_by_parent_ids(self, dbc: DBContext, parent_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_parent_ids", "parent_id", parent_ids)


class ConceptEdgeRepo(EntityRepo[ConceptEdge]):
    table = "concept_edge"
    model = ConceptEdge
    natural_key = ("from_concept_id", "to_concept_id", "edge_type")
    upsert_columns = ("strength", "evidence")
    json_columns = frozenset({"evidence"})

    _EITHER_END = "(" + sql.any_of("from_concept_id") + " OR " + sql.any_of("to_concept_id") + ")"

    def get_by_from_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ConceptEdge]:
        return self._get_by_column(
            dbc,
            "get_by_from_concept_ids",
            "from_concept_id",
            concept_ids,
            ("from_concept_id", "edge_type", "-strength", "id"),
        )

    def get_by_to_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ConceptEdge]:
        return self._get_by_column(
            dbc,
            "get_by_to_concept_ids",
            "to_concept_id",
            concept_ids,
            ("to_concept_id", "edge_type", "-strength", "id"),
        )

    def get_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ConceptEdge]:
        """Edges touching any of ``concept_ids`` at either end."""
        concept_ids = clean_ids(concept_ids)
        if not concept_ids:
            return []
        return self._select(
            dbc,
            "get_by_concept_ids",
            [self._EITHER_END],
            [concept_ids, concept_ids],
            ("edge_type", "-strength", "-created_at", "id"),
        )

    def soft_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        concept_ids = clean_ids(concept_ids)
        if not concept_ids:
            return 0
        return self._soft_delete_where(
            dbc, "soft_delete_by_concept_ids", [self._EITHER_END], [concept_ids, concept_ids]
        )

    def full_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        concept_ids = clean_ids(concept_ids)
        if not concept_ids:
            return 0
        return self._full_delete_where(
            dbc, "full_delete_by_concept_ids", [self._EITHER_END], [concept_ids, concept_ids]
        )


class ConceptClusterRepo(EntityRepo[ConceptCluster]):
    table = "concept_cluster"
    model = ConceptCluster
    json_columns = frozenset({"metadata"})

    def get_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> List[ConceptCluster]:
        if not scope:
            return []
        return self._select(
            dbc, "get_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)], ("-created_at", "id")
        )

    def soft_delete_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> int:
        if not scope:
            return 0
        return self._soft_delete_where(
            dbc, "soft_delete_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)]
        )

    def full_delete_by_scope(
        self, dbc: DBContext, scope: str, scope_id: Optional[uuid.UUID]
    ) -> int:
        if not scope:
            return 0
        return self._full_delete_where(
            dbc, "full_delete_by_scope", _SCOPE_CLAUSES, [scope, clean_id(scope_id)]
        )


class ConceptClusterMemberRepo(EntityRepo[ConceptClusterMember]):
    table = "concept_cluster_member"
    model = ConceptClusterMember
    natural_key = ("cluster_id", "concept_id")
    upsert_columns = ("weight",)

    def get_by_cluster_ids(self, dbc: DBContext, cluster_ids: IDs) -> List[ConceptClusterMember]:
        return self._get_by_column(
            dbc, "get_by_cluster_ids", "cluster_id", cluster_ids, ("cluster_id", "-weight", "id")
        )

    def get_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ConceptClusterMember]:
        return self._get_by_column(
            dbc, "get_by_concept_ids", "concept_id", concept_ids, ("concept_id", "-weight", "id")
        )

    def soft_delete_by_cluster_ids(self, dbc: DBContext, cluster_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_cluster_ids", "cluster_id", cluster_ids)

    def soft_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_concept_ids", "concept_id", concept_ids)

    def full_delete_by_cluster_ids(self, dbc: DBContext, cluster_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_cluster_ids", "cluster_id", cluster_ids)

    def full_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_concept_ids", "concept_id", concept_ids)


class ConceptEvidenceRepo(EntityRepo[ConceptEvidence]):
    table = "concept_evidence"
    model = ConceptEvidence
    natural_key = ("concept_id", "material_chunk_id")
    upsert_columns = ("kind", "excerpt", "weight")

    def get_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ConceptEvidence]:
        return self._get_by_column(
            dbc, "get_by_concept_ids", "concept_id", concept_ids, ("concept_id", "created_at", "id")
        )

    def get_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> List[ConceptEvidence]:
        return self._get_by_column(
            dbc,
            "get_by_material_chunk_ids",
            "material_chunk_id",
            chunk_ids,
            ("material_chunk_id", "created_at", "id"),
        )

    def soft_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_concept_ids", "concept_id", concept_ids)

    def soft_delete_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_material_chunk_ids", "material_chunk_id", chunk_ids
        )

    def full_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_concept_ids", "concept_id", concept_ids)

    def full_delete_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_material_chunk_ids", "material_chunk_id", chunk_ids
        )


__all__ = [
    "ConceptClusterMemberRepo",
    "ConceptClusterRepo",
    "ConceptEdgeRepo",
    "ConceptEvidenceRepo",
    "ConceptRepo",
]
