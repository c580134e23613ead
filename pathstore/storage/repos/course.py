from __future__ import annotations

import uuid
from typing import Iterable, List, Optional

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import (
    Course,
    CourseTag,
    Lesson,
    LessonConcept,
    QuizAttempt,
    is_zero_id,
)
from pathstore.storage.repo import EntityRepo, clean_strings

IDs = Optional[Iterable[Optional[uuid.UUID]]]


class CourseRepo(EntityRepo[Course]):
    table = "course"
    model = Course
    json_columns = frozenset({"metadata"})

    def get_by_user_ids(self, dbc: DBContext, user_ids: IDs) -> List[Course]:
        return self._get_by_column(
            dbc, "get_by_user_ids", "user_id", user_ids, ("user_id", "-created_at", "id")
        )

    def get_by_material_set_ids(self, dbc: DBContext, set_ids: IDs) -> List[Course]:
        return self._get_by_column(
            dbc,
            "get_by_material_set_ids",
            "material_set_id",
            set_ids,
            ("material_set_id", "-created_at", "id"),
        )


class CourseTagRepo(EntityRepo[CourseTag]):
    table = "course_tag"
    model = CourseTag
    natural_key = ("course_id", "tag")

    def get_by_course_id(self, dbc: DBContext, course_id: Optional[uuid.UUID]) -> List[CourseTag]:
        return self.get_by_course_ids(dbc, [course_id])

    def get_by_course_ids(self, dbc: DBContext, course_ids: IDs) -> List[CourseTag]:
        return self._get_by_column(
            dbc, "get_by_course_ids", "course_id", course_ids, ("course_id", "tag")
        )

    def get_by_tags(self, dbc: DBContext, tags: Optional[Iterable[str]]) -> List[CourseTag]:
        tags = clean_strings(tags)
        if not tags:
            return []
        return self._select(dbc, "get_by_tags", [sql.any_of("tag")], [tags], ("tag", "course_id"))

    def get_by_course_id_and_tags(
        self, dbc: DBContext, course_id: Optional[uuid.UUID], tags: Optional[Iterable[str]]
    ) -> List[CourseTag]:
        tags = clean_strings(tags)
        if is_zero_id(course_id) or not tags:
            return []
        return self._select(
            dbc,
            "get_by_course_id_and_tags",
            [sql.eq("course_id"), sql.any_of("tag")],
            [course_id, tags],
            ("tag",),
        )

    def soft_delete_by_course_ids(self, dbc: DBContext, course_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_course_ids", "course_id", course_ids)

    def full_delete_by_course_ids(self, dbc: DBContext, course_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_course_ids", "course_id", course_ids)

    def soft_delete_by_course_id_and_tags(
        self, dbc: DBContext, course_id: Optional[uuid.UUID], tags: Optional[Iterable[str]]
    ) -> int:
        tags = clean_strings(tags)
        if is_zero_id(course_id) or not tags:
            return 0
        return self._soft_delete_where(
            dbc,
            "soft_delete_by_course_id_and_tags",
            [sql.eq("course_id"), sql.any_of("tag")],
            [course_id, tags],
        )

    def full_delete_by_course_id_and_tags(
        self, dbc: DBContext, course_id: Optional[uuid.UUID], tags: Optional[Iterable[str]]
    ) -> int:
        tags = clean_strings(tags)
        if is_zero_id(course_id) or not tags:
            return 0
        return self._full_delete_where(
            dbc,
            "full_delete_by_course_id_and_tags",
            [sql.eq("course_id"), sql.any_of("tag")],
            [course_id, tags],
        )


class LessonRepo(EntityRepo[Lesson]):
    table = "lesson"
    model = Lesson
    json_columns = frozenset({"content_json", "metadata"})

    def get_by_module_ids(self, dbc: DBContext, module_ids: IDs) -> List[Lesson]:
        return self._get_by_column(
            dbc, "get_by_module_ids", "module_id", module_ids, ("module_id", "index", "id")
        )

    def soft_delete_by_module_ids(self, dbc: DBContext, module_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_module_ids", "module_id", module_ids)

    def full_delete_by_module_ids(self, dbc: DBContext, module_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_module_ids", "module_id", module_ids)


class LessonConceptRepo(EntityRepo[LessonConcept]):
    table = "lesson_concept"
    model = LessonConcept
    natural_key = ("lesson_id", "concept_id")

    def get_by_lesson_ids(self, dbc: DBContext, lesson_ids: IDs) -> List[LessonConcept]:
        return self._get_by_column(
            dbc, "get_by_lesson_ids", "lesson_id", lesson_ids, ("lesson_id", "created_at", "id")
        )

    def get_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> List[LessonConcept]:
        return self._get_by_column(
            dbc, "get_by_concept_ids", "concept_id", concept_ids, ("concept_id", "created_at", "id")
        )

    def soft_delete_by_lesson_ids(self, dbc: DBContext, lesson_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_lesson_ids", "lesson_id", lesson_ids)

    def soft_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._soft_delete_by_column(dbc, "soft_delete_by_concept_ids", "concept_id", concept_ids)

    def full_delete_by_lesson_ids(self, dbc: DBContext, lesson_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_lesson_ids", "lesson_id", lesson_ids)

    def full_delete_by_concept_ids(self, dbc: DBContext, concept_ids: IDs) -> int:
        return self._full_delete_by_column(dbc, "full_delete_by_concept_ids", "concept_id", concept_ids)


class QuizAttemptRepo(EntityRepo[QuizAttempt]):
    table = "quiz_attempt"
    model = QuizAttempt
    json_columns = frozenset({"selected_answer", "metadata"})

    def get_by_user_id(self, dbc: DBContext, user_id: Optional[uuid.UUID]) -> List[QuizAttempt]:
        return self._get_by_column(
            dbc, "get_by_user_id", "user_id", [user_id], ("-created_at", "id")
        )

    def get_by_lesson_ids(self, dbc: DBContext, lesson_ids: IDs) -> List[QuizAttempt]:
        return self._get_by_column(
            dbc, "get_by_lesson_ids", "lesson_id", lesson_ids, ("lesson_id", "created_at", "id")
        )


__all__ = [
    "CourseRepo",
    "CourseTagRepo",
    "LessonConceptRepo",
    "LessonRepo",
    "QuizAttemptRepo",
]
