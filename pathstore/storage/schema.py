from __future__ import annotations

from pathlib import Path

REQUIRED_TABLES = (
    "path",
    "path_node",
    "path_node_activity",
    "activity",
    "activity_variant",
    "activity_concept",
    "activity_citation",
    "concept",
    "concept_edge",
    "concept_cluster",
    "concept_cluster_member",
    "concept_evidence",
    "course",
    "course_tag",
    "lesson",
    "lesson_concept",
    "quiz_attempt",
    "user_event",
    "user_event_cursor",
    "user_concept_state",
    "topic_mastery",
    "learning_profile",
    "decision_trace",
    "node_doc_variant",
    "library_taxonomy_snapshot",
)


def load_schema_sql() -> str:
    """Return the bundled DDL shipped next to this module."""
    return Path(__file__).with_name("schema.sql").read_text("utf-8")


__all__ = ["REQUIRED_TABLES", "load_schema_sql"]
