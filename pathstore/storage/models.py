from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

NIL_ID = uuid.UUID(int=0)


class OwnerKind(str, Enum):
    """Discriminator stored in ``activity.owner_type``."""

    PATH = "path"
    PATH_NODE = "path_node"
    COURSE = "course"
    LESSON = "lesson"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> uuid.UUID:
    return uuid.uuid4()


def is_zero_id(value: Optional[uuid.UUID]) -> bool:
    return value is None or value == NIL_ID


def clean_id(value: Optional[uuid.UUID]) -> Optional[uuid.UUID]:
    """Collapse the all-zero id to ``None`` for nullable foreign keys."""
    return None if is_zero_id(value) else value


@dataclass
class BaseRecord:
    id: uuid.UUID = NIL_ID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


# learning paths


@dataclass
class Path(BaseRecord):
    user_id: Optional[uuid.UUID] = None
    title: str = ""
    description: str = ""
    status: str = "draft"
    job_id: Optional[uuid.UUID] = None
    metadata: Optional[Dict[str, Any]] = None
    avatar_url: str = ""
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None


@dataclass
class PathNode(BaseRecord):
    path_id: uuid.UUID = NIL_ID
    index: int = 0
    title: str = ""
    parent_node_id: Optional[uuid.UUID] = None
    gating: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    content_json: Optional[Dict[str, Any]] = None


@dataclass
class PathNodeActivity(BaseRecord):
    path_node_id: uuid.UUID = NIL_ID
    activity_id: uuid.UUID = NIL_ID
    rank: int = 0
    is_primary: bool = False


# activities


@dataclass
class Activity(BaseRecord):
    owner_type: str = ""
    owner_id: Optional[uuid.UUID] = None
    kind: str = ""
    title: str = ""
    content_md: str = ""
    content_json: Optional[Dict[str, Any]] = None
    estimated_minutes: int = 0
    difficulty: str = ""
    status: str = "draft"
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ActivityVariant(BaseRecord):
    activity_id: uuid.UUID = NIL_ID
    variant: str = ""
    content_md: str = ""
    content_json: Optional[Dict[str, Any]] = None
    render_spec: Optional[Dict[str, Any]] = None


@dataclass
class ActivityConcept(BaseRecord):
    activity_id: uuid.UUID = NIL_ID
    concept_id: uuid.UUID = NIL_ID
    role: str = "primary"
    weight: float = 1.0


@dataclass
class ActivityCitation(BaseRecord):
    activity_variant_id: uuid.UUID = NIL_ID
    material_chunk_id: uuid.UUID = NIL_ID
    kind: str = "grounding"


# concepts


@dataclass
class Concept(BaseRecord):
    scope: str = ""
    scope_id: Optional[uuid.UUID] = None
    parent_id: Optional[uuid.UUID] = None
    depth: int = 0
    sort_index: int = 0
    key: str = ""
    name: str = ""
    summary: str = ""
    key_points: Optional[List[str]] = None
    vector_id: str = ""
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class ConceptEdge(BaseRecord):
    from_concept_id: uuid.UUID = NIL_ID
    to_concept_id: uuid.UUID = NIL_ID
    edge_type: str = "prereq"
    strength: float = 1.0
    evidence: Optional[Dict[str, Any]] = None


@dataclass
class ConceptCluster(BaseRecord):
    scope: str = ""
    scope_id: Optional[uuid.UUID] = None
    label: str = ""
    metadata: Optional[Dict[str, Any]] = None
    vector_id: str = ""


@dataclass
class ConceptClusterMember(BaseRecord):
    cluster_id: uuid.UUID = NIL_ID
    concept_id: uuid.UUID = NIL_ID
    weight: float = 1.0


@dataclass
class ConceptEvidence(BaseRecord):
    concept_id: uuid.UUID = NIL_ID
    material_chunk_id: uuid.UUID = NIL_ID
    kind: str = "mention"
    excerpt: str = ""
    weight: float = 1.0


# courses and lessons


@dataclass
class Course(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    material_set_id: Optional[uuid.UUID] = None
    title: str = ""
    description: str = ""
    level: str = ""
    progress: int = 0
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class CourseTag(BaseRecord):
    course_id: uuid.UUID = NIL_ID
    tag: str = ""


@dataclass
class Lesson(BaseRecord):
    module_id: uuid.UUID = NIL_ID
    index: int = 0
    title: str = ""
    kind: str = "reading"
    content_md: str = ""
    content_json: Optional[Dict[str, Any]] = None
    estimated_minutes: int = 0
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class LessonConcept(BaseRecord):
    lesson_id: uuid.UUID = NIL_ID
    concept_id: uuid.UUID = NIL_ID


@dataclass
class QuizAttempt(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    lesson_id: uuid.UUID = NIL_ID
    question_id: uuid.UUID = NIL_ID
    is_correct: bool = False
    selected_answer: Optional[Dict[str, Any]] = None
    score: float = 0.0
    metadata: Optional[Dict[str, Any]] = None


# personalization


@dataclass
class UserEvent(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    client_event_id: str = ""
    occurred_at: Optional[datetime] = None
    session_id: Optional[uuid.UUID] = None
    path_id: Optional[uuid.UUID] = None
    path_node_id: Optional[uuid.UUID] = None
    activity_id: Optional[uuid.UUID] = None
    activity_variant: str = ""
    modality: str = ""
    concept_id: Optional[uuid.UUID] = None
    type: str = ""
    data: Optional[Dict[str, Any]] = None


@dataclass
class UserEventCursor(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    consumer: str = ""
    last_created_at: Optional[datetime] = None
    last_event_id: Optional[uuid.UUID] = None


@dataclass
class UserConceptState(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    concept_id: uuid.UUID = NIL_ID
    mastery: float = 0.0
    confidence: float = 0.0
    bkt_p_learn: float = 0.0
    bkt_p_guess: float = 0.0
    bkt_p_slip: float = 0.0
    bkt_p_forget: float = 0.0
    epistemic_uncertainty: float = 0.0
    aleatoric_uncertainty: float = 0.0
    half_life_days: float = 0.0
    last_seen_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    decay_rate: float = 0.0
    misconceptions: Optional[Dict[str, Any]] = None
    attempts: int = 0
    correct: int = 0


@dataclass
class TopicMastery(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    topic: str = ""
    mastery: float = 0.0
    metadata: Optional[Dict[str, Any]] = None
    last_update: Optional[datetime] = None


@dataclass
class LearningProfile(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    diagnoses: Optional[Dict[str, Any]] = None
    accommodations: Optional[Dict[str, Any]] = None
    constraints: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None
    notes: str = ""


@dataclass
class DecisionTrace(BaseRecord):
    user_id: uuid.UUID = NIL_ID
    path_id: Optional[uuid.UUID] = None
    path_node_id: Optional[uuid.UUID] = None
    decision_type: str = ""
    policy_version: str = ""
    inputs: Optional[Dict[str, Any]] = None
    candidates: Optional[Dict[str, Any]] = None
    chosen: Optional[Dict[str, Any]] = None
    rationale: str = ""
    occurred_at: Optional[datetime] = None


# snapshot-style rows: no deleted_at, overwrite on upsert


@dataclass
class NodeDocVariant:
    id: uuid.UUID = NIL_ID
    snapshot_id: str = ""
    user_id: uuid.UUID = NIL_ID
    path_id: uuid.UUID = NIL_ID
    path_node_id: uuid.UUID = NIL_ID
    base_doc_id: Optional[uuid.UUID] = None
    variant_kind: str = ""
    policy_version: str = ""
    schema_version: int = 1
    trace_id: str = ""
    doc_json: Optional[Dict[str, Any]] = None
    doc_text: str = ""
    content_hash: str = ""
    sources_hash: str = ""
    status: str = "active"
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class LibraryTaxonomySnapshot:
    id: uuid.UUID = NIL_ID
    user_id: uuid.UUID = NIL_ID
    version: int = 1
    snapshot_json: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ViewResult:
    view_count: int = 0
    last_viewed_at: Optional[datetime] = None
    applied: bool = False


__all__ = [
    "Activity",
    "ActivityCitation",
    "ActivityConcept",
    "ActivityVariant",
    "BaseRecord",
    "Concept",
    "ConceptCluster",
    "ConceptClusterMember",
    "ConceptEdge",
    "ConceptEvidence",
    "Course",
    "CourseTag",
    "DecisionTrace",
    "LearningProfile",
    "Lesson",
    "LessonConcept",
    "LibraryTaxonomySnapshot",
    "NIL_ID",
    "NodeDocVariant",
    "OwnerKind",
    "Path",
    "PathNode",
    "PathNodeActivity",
    "QuizAttempt",
    "TopicMastery",
    "UserConceptState",
    "UserEvent",
    "UserEventCursor",
    "ViewResult",
    "clean_id",
    "is_zero_id",
    "new_id",
    "utcnow",
]
