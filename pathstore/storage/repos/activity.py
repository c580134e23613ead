from __future__ import annotations

import uuid
from typing import Iterable, List, Optional, Union

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import (
    Activity,
    ActivityCitation,
    ActivityConcept,
    ActivityVariant,
    OwnerKind,
    clean_id,
    is_zero_id,
)
from pathstore.storage.repo import EntityRepo, clean_ids, clean_strings

IDs = Optional[Iterable[Optional[uuid.UUID]]]
Owner = Union[OwnerKind, str, None]

_OWNER_CLAUSES = [sql.eq("owner_type"), sql.null_safe_eq("owner_id")]


def _owner_type(owner_type: Owner) -> str:
    if isinstance(owner_type, OwnerKind):
        return owner_type.value
    return (owner_type or "").strip()


class ActivityRepo(EntityRepo[Activity]):
    table = "activity"
    model = Activity
    json_columns = frozenset({"content_json", "metadata"})

    def list_by_owner(
        self, dbc: DBContext, owner_type: Owner, owner_id: Optional[uuid.UUID]
    ) -> List[Activity]:
        """Activities of one owner, oldest first. A zero ``owner_id`` matches unowned rows."""
        kind = _owner_type(owner_type)
        if not kind:
            return []
        return self._select(
            dbc,
            "list_by_owner",
            _OWNER_CLAUSES,
            [kind, clean_id(owner_id)],
            ("created_at", "id"),
        )

    def list_by_owner_ids(
        self, dbc: DBContext, owner_type: Owner, owner_ids: IDs
    ) -> List[Activity]:
        kind = _owner_type(owner_type)
        owner_ids = clean_ids(owner_ids)
        if not kind or not owner_ids:
            return []
        return self._select(
            dbc,
            "list_by_owner_ids",
            [sql.eq("owner_type"), sql.any_of("owner_id")],
            [kind, owner_ids],
            ("owner_id", "created_at", "id"),
        )

    def list_by_status(self, dbc: DBContext, statuses: Optional[Iterable[str]]) -> List[Activity]:
        statuses = clean_strings(statuses)
        if not statuses:
            return []
        return self._select(
            dbc, "list_by_status", [sql.any_of("status")], [statuses], ("-created_at", "id")
        )

    def soft_delete_by_owner(
        self, dbc: DBContext, owner_type: Owner, owner_id: Optional[uuid.UUID]
    ) -> int:
        kind = _owner_type(owner_type)
        if not kind:
            return 0
        return self._soft_delete_where(
            dbc, "soft_delete_by_owner", _OWNER_CLAUSES, [kind, clean_id(owner_id)]
        )

    def full_delete_by_owner(
        self, dbc: DBContext, owner_type: Owner, owner_id: Optional[uuid.UUID]
    ) -> int:
        kind = _owner_type(owner_type)
        if not kind:
            return 0
        return self._full_delete_where(
            dbc, "full_delete_by_owner", _OWNER_CLAUSES, [kind, clean_id(owner_id)]
        )


class ActivityVariantRepo(EntityRepo[ActivityVariant]):
    table = "activity_variant"
    model = ActivityVariant
    natural_key = ("activity_id", "variant")
    upsert_columns = ("content_md", "content_json", "render_spec")
    json_columns = frozenset({"content_json", "render_spec"})

    def get_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> List[ActivityVariant]:
        return self._get_by_column(
            dbc, "get_by_activity_ids", "activity_id", activity_ids, ("activity_id", "variant")
        )

    def get_by_activity_and_variants(
        self,
        dbc: DBContext,
        activity_id: Optional[uuid.UUID],
        variants: Optional[Iterable[str]],
    ) -> List[ActivityVariant]:
        variants = clean_strings(variants)
        if is_zero_id(activity_id) or not variants:
            return []
        return self._select(
            dbc,
            "get_by_activity_and_variants",
            [sql.eq("activity_id"), sql.any_of("variant")],
            [activity_id, variants],
            ("variant",),
        )

    def get_by_activity_and_variant(
        self, dbc: DBContext, activity_id: Optional[uuid.UUID], variant: str
    ) -> Optional[ActivityVariant]:
        rows = self.get_by_activity_and_variants(dbc, activity_id, [variant])
        return rows[0] if rows else None

    def soft_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_activity_ids", "activity_id", activity_ids
        )

    def full_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_activity_ids", "activity_id", activity_ids
        )

    def soft_delete_by_activity_and_variants(
        self,
        dbc: DBContext,
        activity_id: Optional[uuid.UUID],
        variants: Optional[Iterable[str]],
    ) -> int:
        variants = clean_strings(variants)
        if is_zero_id(activity_id) or not variants:
            return 0
        return self._soft_delete_where(
            dbc,
            "soft_delete_by_activity_and_variants",
            [sql.eq("activity_id"), sql.any_of("variant")],
            [activity_id, variants],
        )

    def full_delete_by_activity_and_variants(
        self,
        dbc: DBContext,
        activity_id: Optional[uuid.UUID],
        variants: Optional[Iterable[str]],
    ) -> int:
        variants = clean_strings(variants)
        if is_zero_id(activity_id) or not variants:
            return 0
        return self._full_delete_where(
            dbc,
            "full_delete_by_activity_and_variants",
            [sql.eq("activity_id"), sql.any_of("variant")],
            [activity_id, variants],
        )


class ActivityConceptRepo(EntityRepo[ActivityConcept]):
    table = "activity_concept"
    model = ActivityConcept
    natural_key = ("activity_id", "concept_id")
    upsert_columns = ("role", "weight")

    def get_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> List[ActivityConcept]:
        return self._get_by_column(
            dbc,
            "get_by_activity_ids",
            "activity_id",
            activity_ids,
            ("activity_id", "-weight", "role", "id"),
        )

    def get_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[ActivityConcept]:
        return self._get_by_column(
            dbc,
            "get_by_concept_ids",
            "concept_id",
            concept_ids,
            ("concept_id", "-weight", "activity_id"),
        )

    def soft_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_activity_ids", "activity_id", activity_ids
        )

    def soft_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_concept_ids", "concept_id", concept_ids
        )

    def full_delete_by_activity_ids(self, dbc: DBContext, activity_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_activity_ids", "activity_id", activity_ids
        )

    def full_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_concept_ids", "concept_id", concept_ids
        )


class ActivityCitationRepo(EntityRepo[ActivityCitation]):
    table = "activity_citation"
    model = ActivityCitation
    natural_key = ("activity_variant_id", "material_chunk_id")
    upsert_columns = ("kind",)

    def get_by_activity_variant_ids(
        self, dbc: DBContext, variant_ids: IDs
    ) -> List[ActivityCitation]:
        return self._get_by_column(
            dbc,
            "get_by_activity_variant_ids",
            "activity_variant_id",
            variant_ids,
            ("activity_variant_id", "created_at", "id"),
        )

    def get_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> List[ActivityCitation]:
        return self._get_by_column(
            dbc,
            "get_by_material_chunk_ids",
            "material_chunk_id",
            chunk_ids,
            ("material_chunk_id", "created_at", "id"),
        )

    def soft_delete_by_activity_variant_ids(self, dbc: DBContext, variant_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_activity_variant_ids", "activity_variant_id", variant_ids
        )

    def soft_delete_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> int:
        return self._soft_delete_by_column(
            dbc, "soft_delete_by_material_chunk_ids", "material_chunk_id", chunk_ids
        )

    def full_delete_by_activity_variant_ids(self, dbc: DBContext, variant_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_activity_variant_ids", "activity_variant_id", variant_ids
        )

    def full_delete_by_material_chunk_ids(self, dbc: DBContext, chunk_ids: IDs) -> int:
        return self._full_delete_by_column(
            dbc, "full_delete_by_material_chunk_ids", "material_chunk_id", chunk_ids
        )


__all__ = [
    "ActivityCitationRepo",
    "ActivityConceptRepo",
    "ActivityRepo",
    "ActivityVariantRepo",
]
