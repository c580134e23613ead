from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from pathstore.config import Settings
from pathstore.storage.repo import Clock
from pathstore.storage.repos.activity import (
    ActivityCitationRepo,
    ActivityConceptRepo,
    ActivityRepo,
    ActivityVariantRepo,
)
from pathstore.storage.repos.concept import (
    ConceptClusterMemberRepo,
    ConceptClusterRepo,
    ConceptEdgeRepo,
    ConceptEvidenceRepo,
    ConceptRepo,
)
from pathstore.storage.repos.course import (
    CourseRepo,
    CourseTagRepo,
    LessonConceptRepo,
    LessonRepo,
    QuizAttemptRepo,
)
from pathstore.storage.repos.docs import LibraryTaxonomySnapshotRepo, NodeDocVariantRepo
from pathstore.storage.repos.events import UserEventCursorRepo, UserEventRepo
from pathstore.storage.repos.path import PathNodeActivityRepo, PathNodeRepo, PathRepo
from pathstore.storage.repos.personalization import (
    DecisionTraceRepo,
    LearningProfileRepo,
    TopicMasteryRepo,
    UserConceptStateRepo,
)
from pathstore.storage.store import StoreHandle


@dataclass
class Repos:
    """Every repo wired to one store handle and logger."""

    path: PathRepo
    path_node: PathNodeRepo
    path_node_activity: PathNodeActivityRepo
    activity: ActivityRepo
    activity_variant: ActivityVariantRepo
    activity_concept: ActivityConceptRepo
    activity_citation: ActivityCitationRepo
    concept: ConceptRepo
    concept_edge: ConceptEdgeRepo
    concept_cluster: ConceptClusterRepo
    concept_cluster_member: ConceptClusterMemberRepo
    concept_evidence: ConceptEvidenceRepo
    course: CourseRepo
    course_tag: CourseTagRepo
    lesson: LessonRepo
    lesson_concept: LessonConceptRepo
    quiz_attempt: QuizAttemptRepo
    user_event: UserEventRepo
    user_event_cursor: UserEventCursorRepo
    user_concept_state: UserConceptStateRepo
    topic_mastery: TopicMasteryRepo
    learning_profile: LearningProfileRepo
    decision_trace: DecisionTraceRepo
    node_doc_variant: NodeDocVariantRepo
    library_taxonomy_snapshot: LibraryTaxonomySnapshotRepo

    @classmethod
    def build(
        cls,
        store: StoreHandle,
        logger: Any,
        *,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ) -> "Repos":
        """Wire every repo; ``settings`` supplies repo defaults such as the view window."""

        def make(repo_cls):
            return repo_cls(store, logger, clock=clock)

        repos = cls(
            path=make(PathRepo),
            path_node=make(PathNodeRepo),
            path_node_activity=make(PathNodeActivityRepo),
            activity=make(ActivityRepo),
            activity_variant=make(ActivityVariantRepo),
            activity_concept=make(ActivityConceptRepo),
            activity_citation=make(ActivityCitationRepo),
            concept=make(ConceptRepo),
            concept_edge=make(ConceptEdgeRepo),
            concept_cluster=make(ConceptClusterRepo),
            concept_cluster_member=make(ConceptClusterMemberRepo),
            concept_evidence=make(ConceptEvidenceRepo),
            course=make(CourseRepo),
            course_tag=make(CourseTagRepo),
            lesson=make(LessonRepo),
            lesson_concept=make(LessonConceptRepo),
            quiz_attempt=make(QuizAttemptRepo),
            user_event=make(UserEventRepo),
            user_event_cursor=make(UserEventCursorRepo),
            user_concept_state=make(UserConceptStateRepo),
            topic_mastery=make(TopicMasteryRepo),
            learning_profile=make(LearningProfileRepo),
            decision_trace=make(DecisionTraceRepo),
            node_doc_variant=make(NodeDocVariantRepo),
            library_taxonomy_snapshot=make(LibraryTaxonomySnapshotRepo),
        )
        if settings is not None:
            repos.path.view_dedupe_window = timedelta(seconds=settings.view_dedupe_seconds)
        return repos


__all__ = ["Repos"]
