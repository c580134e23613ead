"""Shared EntityRepo machinery, exercised through concrete repos."""

import uuid
from datetime import datetime, timezone

import pytest
from psycopg import errors as pg_errors
from psycopg.types.json import Jsonb

from pathstore.storage.dbctx import DBContext
from pathstore.storage.errors import InvalidArgument, UniqueViolation
from pathstore.storage.models import (
    NIL_ID,
    Activity,
    CourseTag,
    LibraryTaxonomySnapshot,
    OwnerKind,
    Path,
    TopicMastery,
)
from pathstore.storage.repos.path import PathRepo


class RecordingLogger:
    def __init__(self):
        self.records = []
        self.context = {}

    def bind(self, **kwargs):
        self.context.update(kwargs)
        return self

    def warning(self, event, **kwargs):
        self.records.append(("warning", event, kwargs))

    def info(self, event, **kwargs):
        self.records.append(("info", event, kwargs))

    def debug(self, event, **kwargs):
        self.records.append(("debug", event, kwargs))


@pytest.fixture
def dbc():
    return DBContext.background()


class TestConstruction:
    def test_store_is_required(self, logger):
        with pytest.raises(ValueError):
            PathRepo(None, logger)

    def test_logger_is_required(self, store):
        with pytest.raises(ValueError):
            PathRepo(store, None)

    def test_logger_is_bound_to_repo_name(self, store):
        log = RecordingLogger()
        PathRepo(store, log)
        assert log.context["repo"] == "PathRepo"

    def test_columns_follow_model_fields(self, repos):
        assert repos.path.columns[:4] == ("id", "created_at", "updated_at", "deleted_at")
        assert "view_count" in repos.path.columns


class TestCreate:
    def test_empty_input_issues_no_statement(self, repos, fake_pool, dbc):
        assert repos.path.create(dbc, None) == []
        assert repos.path.create(dbc, [None]) == []
        assert fake_pool.statements == []

    def test_single_multi_row_insert(self, repos, fake_pool, dbc, clock):
        rows = [Path(title="a"), Path(title="b")]
        created = repos.path.create(dbc, rows)
        assert created == rows
        assert len(fake_pool.statements) == 1
        query, params = fake_pool.last
        assert query.startswith('INSERT INTO "path"')
        assert len(params) == 2 * len(repos.path.columns)
        for row in rows:
            assert row.id != NIL_ID
            assert row.created_at == clock.now
            assert row.updated_at == clock.now

    def test_existing_id_and_created_at_are_kept(self, repos, dbc, clock):
        given = uuid.uuid4()
        created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
        row = Path(id=given, created_at=created_at)
        repos.path.create(dbc, [row])
        assert row.id == given
        assert row.created_at == created_at
        assert row.updated_at == clock.now

    def test_json_enum_and_zero_id_adaptation(self, repos, fake_pool, dbc):
        row = Activity(
            owner_type=OwnerKind.PATH_NODE,
            owner_id=NIL_ID,
            content_json={"blocks": []},
        )
        repos.activity.create(dbc, [row])
        params = dict(zip(repos.activity.columns, fake_pool.last[1]))
        assert params["owner_type"] == "path_node"
        assert params["owner_id"] is None
        assert isinstance(params["content_json"], Jsonb)
        assert params["metadata"] is None

    def test_collision_fails_whole_batch(self, repos, fake_pool, dbc):
        fake_pool.fail_on = "INSERT"
        fake_pool.fail_with = pg_errors.UniqueViolation("duplicate key")
        cid = uuid.uuid4()
        with pytest.raises(UniqueViolation):
            repos.course_tag.create(
                dbc, [CourseTag(course_id=cid, tag="x"), CourseTag(course_id=cid, tag="x")]
            )


class TestCreateIgnoreDuplicates:
    def test_skips_invalid_rows_and_returns_rowcount(self, repos, fake_pool, dbc):
        cid = uuid.uuid4()
        fake_pool.respond(rowcount=1)
        inserted = repos.course_tag.create_ignore_duplicates(
            dbc,
            [
                CourseTag(course_id=cid, tag="python"),
                CourseTag(course_id=cid, tag="  "),
                CourseTag(course_id=NIL_ID, tag="go"),
                None,
            ],
        )
        assert inserted == 1
        query, params = fake_pool.last
        assert query.endswith(
            'ON CONFLICT ("course_id", "tag") WHERE deleted_at IS NULL DO NOTHING'
        )
        assert len(params) == len(repos.course_tag.columns)

    def test_all_invalid_is_a_no_op(self, repos, fake_pool, dbc):
        assert repos.course_tag.create_ignore_duplicates(dbc, [CourseTag()]) == 0
        assert fake_pool.statements == []

    def test_keyless_table_conflicts_on_id(self, repos, fake_pool, dbc):
        repos.path.create_ignore_duplicates(dbc, [Path(title="x")])
        assert fake_pool.last[0].endswith('ON CONFLICT ("id") DO NOTHING')


class TestReads:
    def test_ids_are_cleaned_before_query(self, repos, fake_pool, dbc):
        a, b = uuid.uuid4(), uuid.uuid4()
        repos.path.get_by_ids(dbc, [a, NIL_ID, None, b, a])
        query, params = fake_pool.last
        assert '"id" = ANY(%s)' in query
        assert "deleted_at IS NULL" in query
        assert params == [[a, b]]

    def test_empty_ids_issue_no_statement(self, repos, fake_pool, dbc):
        assert repos.path.get_by_ids(dbc, [NIL_ID, None]) == []
        assert repos.path.get_by_id(dbc, NIL_ID) is None
        assert fake_pool.statements == []

    def test_unscoped_read_includes_deleted(self, repos, fake_pool, dbc):
        repos.path.get_by_ids(dbc, [uuid.uuid4()], unscoped=True)
        assert "deleted_at IS NULL" not in fake_pool.last[0]

    def test_rows_are_decoded_into_models(self, repos, fake_pool, dbc):
        pid = uuid.uuid4()
        fake_pool.respond(rows=[{"id": pid, "title": "Intro", "view_count": 3}])
        path = repos.path.get_by_id(dbc, pid)
        assert isinstance(path, Path)
        assert path.id == pid
        assert path.title == "Intro"
        assert path.view_count == 3

    def test_snapshot_reads_have_no_live_filter(self, repos, fake_pool, dbc):
        repos.library_taxonomy_snapshot.get_by_ids(dbc, [uuid.uuid4()])
        assert "deleted_at" not in fake_pool.last[0]


class TestUpdates:
    def test_update_rewrites_all_but_identity(self, repos, fake_pool, dbc, clock):
        row = Path(id=uuid.uuid4(), title="new")
        repos.path.update(dbc, row)
        query, params = fake_pool.last
        assert query.startswith('UPDATE "path" SET "updated_at" = %s')
        assert '"created_at" = %s' not in query
        assert query.endswith('WHERE "id" = %s AND deleted_at IS NULL')
        assert params[-1] == row.id
        assert row.updated_at == clock.now

    def test_update_fields_rejects_unknown_columns(self, repos, fake_pool, dbc):
        with pytest.raises(InvalidArgument) as excinfo:
            repos.path.update_fields(dbc, uuid.uuid4(), {"title": "x", "bogus": 1})
        assert excinfo.value.detail["columns"] == ["bogus"]
        with pytest.raises(InvalidArgument):
            repos.path.update_fields(dbc, uuid.uuid4(), {"id": uuid.uuid4()})
        assert fake_pool.statements == []

    def test_update_fields_stamps_updated_at(self, repos, fake_pool, dbc, clock):
        pid = uuid.uuid4()
        repos.path.update_fields(dbc, pid, {"status": "ready", "metadata": {"a": 1}})
        query, params = fake_pool.last
        assert query == (
            'UPDATE "path" SET "status" = %s, "metadata" = %s, "updated_at" = %s '
            'WHERE "id" = %s AND deleted_at IS NULL'
        )
        assert params[0] == "ready"
        assert isinstance(params[1], Jsonb)
        assert params[2:] == [clock.now, pid]

    def test_update_fields_unscoped_can_restore(self, repos, fake_pool, dbc):
        repos.path.update_fields(dbc, uuid.uuid4(), {"deleted_at": None}, unscoped=True)
        assert "deleted_at IS NULL" not in fake_pool.last[0]

    def test_zero_id_is_a_no_op(self, repos, fake_pool, dbc):
        repos.path.update_fields(dbc, NIL_ID, {"title": "x"})
        repos.path.update(dbc, Path())
        assert fake_pool.statements == []


class TestUpsert:
    def test_upsert_writes_back_stored_identity(self, repos, fake_pool, dbc):
        stored_id = uuid.uuid4()
        stored_at = datetime(2023, 5, 1, tzinfo=timezone.utc)
        fake_pool.respond(rows=[{"id": stored_id, "created_at": stored_at}])
        row = TopicMastery(user_id=uuid.uuid4(), topic="algebra", mastery=0.4)
        repos.topic_mastery.upsert(dbc, row)
        query, _ = fake_pool.last
        assert 'ON CONFLICT ("user_id", "topic") WHERE deleted_at IS NULL DO UPDATE SET' in query
        assert '"mastery" = EXCLUDED."mastery"' in query
        assert '"updated_at" = EXCLUDED."updated_at"' in query
        assert '"created_at" = EXCLUDED' not in query
        assert query.endswith('RETURNING "id", "created_at"')
        assert row.id == stored_id
        assert row.created_at == stored_at

    def test_invalid_key_is_silently_skipped(self, repos, fake_pool, dbc):
        repos.topic_mastery.upsert(dbc, TopicMastery(user_id=uuid.uuid4(), topic=""))
        repos.topic_mastery.upsert(dbc, None)
        assert fake_pool.statements == []

    def test_keyless_repo_upsert_is_a_no_op(self, repos, fake_pool, dbc):
        row = Path(title="x")
        repos.path.upsert(dbc, row)
        assert fake_pool.statements == []
        assert row.id == NIL_ID

    def test_snapshot_upsert_has_no_live_predicate(self, repos, fake_pool, dbc):
        fake_pool.respond(rows=[{"id": uuid.uuid4(), "created_at": None}])
        repos.library_taxonomy_snapshot.upsert(
            dbc, LibraryTaxonomySnapshot(user_id=uuid.uuid4(), version=2)
        )
        query = fake_pool.last[0]
        assert 'ON CONFLICT ("user_id") DO UPDATE SET' in query
        assert "deleted_at" not in query


class TestDeletes:
    def test_soft_delete_stamps_live_rows(self, repos, fake_pool, dbc, clock):
        pid = uuid.uuid4()
        fake_pool.respond(rowcount=1)
        assert repos.path.soft_delete_by_ids(dbc, [pid, pid, NIL_ID]) == 1
        query, params = fake_pool.last
        assert query == (
            'UPDATE "path" SET "deleted_at" = %s WHERE "id" = ANY(%s) AND deleted_at IS NULL'
        )
        assert params == [clock.now, [pid]]

    def test_full_delete_removes_rows(self, repos, fake_pool, dbc):
        fake_pool.respond(rowcount=2)
        assert repos.path.full_delete_by_ids(dbc, [uuid.uuid4(), uuid.uuid4()]) == 2
        assert fake_pool.last[0] == 'DELETE FROM "path" WHERE "id" = ANY(%s)'

    def test_empty_delete_is_a_no_op(self, repos, fake_pool, dbc):
        assert repos.path.soft_delete_by_ids(dbc, []) == 0
        assert repos.path.full_delete_by_ids(dbc, None) == 0
        assert fake_pool.statements == []

    def test_snapshot_tables_refuse_soft_delete(self, repos, dbc):
        with pytest.raises(InvalidArgument):
            repos.library_taxonomy_snapshot.soft_delete_by_ids(dbc, [uuid.uuid4()])


class TestStatementFailureLogging:
    def test_failure_is_logged_with_redacted_params_and_reraised(self, store, fake_pool, dbc):
        log = RecordingLogger()
        repo = PathRepo(store, log)
        fake_pool.fail_on = "UPDATE"
        fake_pool.fail_with = pg_errors.SerializationFailure("could not serialize")
        with pytest.raises(Exception) as excinfo:
            repo.update_fields(dbc, uuid.uuid4(), {"description": "x" * 500})
        assert excinfo.value.kind.value == "transient"
        level, event, fields = log.records[-1]
        assert (level, event) == ("warning", "repo_statement_failed")
        assert fields["op"] == "update_fields"
        assert fields["table"] == "path"
        assert len(fields["params"][0]) < 500
