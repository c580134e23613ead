from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import (
    DecisionTrace,
    LearningProfile,
    TopicMastery,
    UserConceptState,
    is_zero_id,
)
from pathstore.storage.repo import EntityRepo, clean_ids, clean_strings

IDs = Optional[Iterable[Optional[uuid.UUID]]]

DEFAULT_STATE_LIMIT = 1000
MAX_STATE_LIMIT = 5000


class UserConceptStateRepo(EntityRepo[UserConceptState]):
    table = "user_concept_state"
    model = UserConceptState
    natural_key = ("user_id", "concept_id")
    upsert_columns = (
        "mastery",
        "confidence",
        "bkt_p_learn",
        "bkt_p_guess",
        "bkt_p_slip",
        "bkt_p_forget",
        "epistemic_uncertainty",
        "aleatoric_uncertainty",
        "half_life_days",
        "last_seen_at",
        "next_review_at",
        "decay_rate",
        "misconceptions",
        "attempts",
        "correct",
    )
    json_columns = frozenset({"misconceptions"})

    def get(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], concept_id: Optional[uuid.UUID]
    ) -> Optional[UserConceptState]:
        if is_zero_id(user_id) or is_zero_id(concept_id):
            return None
        rows = self._select(
            dbc,
            "get",
            [sql.eq("user_id"), sql.eq("concept_id")],
            [user_id, concept_id],
            limit=1,
        )
        return rows[0] if rows else None

    def list_by_user_and_concept_ids(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], concept_ids: IDs
    ) -> List[UserConceptState]:
        concept_ids = clean_ids(concept_ids)
        if is_zero_id(user_id) or not concept_ids:
            return []
        return self._select(
            dbc,
            "list_by_user_and_concept_ids",
            [sql.eq("user_id"), sql.any_of("concept_id")],
            [user_id, concept_ids],
            ("concept_id",),
        )

    def list_by_user_id(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], limit: int = 0
    ) -> List[UserConceptState]:
        """Most recently updated states first; ``limit`` defaults to 1000, capped at 5000."""
        if is_zero_id(user_id):
            return []
        if limit <= 0:
            limit = DEFAULT_STATE_LIMIT
        limit = min(limit, MAX_STATE_LIMIT)
        return self._select(
            dbc,
            "list_by_user_id",
            [sql.eq("user_id")],
            [user_id],
            ("-updated_at", "id"),
            limit=limit,
        )


class TopicMasteryRepo(EntityRepo[TopicMastery]):
    table = "topic_mastery"
    model = TopicMastery
    natural_key = ("user_id", "topic")
    upsert_columns = ("mastery", "metadata", "last_update")
    json_columns = frozenset({"metadata"})

    def get_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> List[TopicMastery]:
        return self._get_by_column(
            dbc, "get_by_user_ids", "user_id", user_ids, ("user_id", "topic")
        )

    def get_by_user_id_and_topics(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], topics: Optional[Iterable[str]]
    ) -> List[TopicMastery]:
        topics = clean_strings(topics)
        if is_zero_id(user_id) or not topics:
            return []
        return self._select(
            dbc,
            "get_by_user_id_and_topics",
            [sql.eq("user_id"), sql.any_of("topic")],
            [user_id, topics],
            ("topic",),
        )


class LearningProfileRepo(EntityRepo[LearningProfile]):
    table = "learning_profile"
    model = LearningProfile
    natural_key = ("user_id",)
    upsert_columns = ("diagnoses", "accommodations", "constraints", "preferences", "notes")
    json_columns = frozenset({"diagnoses", "accommodations", "constraints", "preferences"})

    def get_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> List[LearningProfile]:
        return self._get_by_column(dbc, "get_by_user_ids", "user_id", user_ids, ("user_id",))


class DecisionTraceRepo(EntityRepo[DecisionTrace]):
    table = "decision_trace"
    model = DecisionTrace
    json_columns = frozenset({"inputs", "candidates", "chosen"})

    def create(
        self, dbc: DBContext, rows: Optional[Sequence[Optional[DecisionTrace]]]
    ) -> List[DecisionTrace]:
        now = self.clock()
        for row in rows or []:
            if row is not None and row.occurred_at is None:
                row.occurred_at = now
        return super().create(dbc, rows)

    def list_by_user(
        self,
        dbc: DBContext,
        user_id: Optional[uuid.UUID],
        decision_types: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
        limit: int = 0,
    ) -> List[DecisionTrace]:
        """Traces of one user, newest first, optionally narrowed by type and time."""
        if is_zero_id(user_id):
            return []
        clauses = [sql.eq("user_id")]
        params: List[object] = [user_id]
        types = clean_strings(decision_types)
        if types:
            clauses.append(sql.any_of("decision_type"))
            params.append(types)
        if since is not None:
            clauses.append(f"{sql.ident('occurred_at')} >= %s")
            params.append(since)
        return self._select(
            dbc,
            "list_by_user",
            clauses,
            params,
            ("-occurred_at", "-id"),
            limit=limit if limit > 0 else None,
        )

    def get_by_path_node_ids(self, dbc: DBContext, node_ids: IDs) -> List[DecisionTrace]:
        return self._get_by_column(
            dbc, "get_by_path_node_ids", "path_node_id", node_ids, ("path_node_id", "-occurred_at", "id")
        )


__all__ = [
    "DecisionTraceRepo",
    "LearningProfileRepo",
    "TopicMasteryRepo",
    "UserConceptStateRepo",
]
