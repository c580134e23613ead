import uuid
from datetime import timedelta

import pytest

from pathstore.config import Settings
from pathstore.storage.dbctx import DBContext
from pathstore.storage.models import NIL_ID, ViewResult
from pathstore.storage.repos.registry import Repos


@pytest.fixture
def dbc():
    return DBContext.background()


class TestRecordView:
    def test_counts_view_and_returns_new_state(self, repos, fake_pool, dbc, clock):
        user_id, path_id = uuid.uuid4(), uuid.uuid4()
        fake_pool.respond(rows=[{"view_count": 1, "last_viewed_at": clock.now}])
        result = repos.path.record_view(dbc, user_id, path_id, timedelta(seconds=60))

        assert result == ViewResult(view_count=1, last_viewed_at=clock.now, applied=True)
        query, params = fake_pool.last
        assert query.startswith("UPDATE path SET view_count = CASE")
        assert "RETURNING view_count, last_viewed_at" in query
        assert "updated_at" not in query
        cutoff = clock.now - timedelta(seconds=60)
        assert params == [cutoff, cutoff, clock.now, path_id, user_id]

    def test_numeric_window_is_seconds(self, repos, fake_pool, dbc, clock):
        repos.path.record_view(dbc, uuid.uuid4(), uuid.uuid4(), 30)
        assert fake_pool.last[1][0] == clock.now - timedelta(seconds=30)

    @pytest.mark.parametrize("window", [None, 0, timedelta(0), timedelta(seconds=-5)])
    def test_no_window_counts_every_view(self, repos, fake_pool, dbc, window):
        repos.path.record_view(dbc, uuid.uuid4(), uuid.uuid4(), window)
        params = fake_pool.last[1]
        assert params[0] is None and params[1] is None

    def test_missing_or_foreign_path_is_not_applied(self, repos, fake_pool, dbc):
        assert repos.path.record_view(dbc, uuid.uuid4(), uuid.uuid4(), 60) == ViewResult()
        assert len(fake_pool.statements) == 1

    def test_zero_ids_issue_no_statement(self, repos, fake_pool, dbc):
        assert repos.path.record_view(dbc, NIL_ID, uuid.uuid4()) == ViewResult()
        assert repos.path.record_view(dbc, uuid.uuid4(), None) == ViewResult()
        assert fake_pool.statements == []


class TestPathQueries:
    def test_list_by_user_is_newest_first(self, repos, fake_pool, dbc):
        uid = uuid.uuid4()
        repos.path.list_by_user(dbc, uid)
        query, params = fake_pool.last
        assert '"user_id" IS NOT DISTINCT FROM %s' in query
        assert query.endswith('ORDER BY "created_at" DESC, "id" ASC')
        assert params == [uid]

    def test_list_by_user_without_user_selects_unowned(self, repos, fake_pool, dbc):
        repos.path.list_by_user(dbc, NIL_ID)
        assert fake_pool.last[1] == [None]

    def test_status_filter(self, repos, fake_pool, dbc):
        assert repos.path.list_by_status(dbc, ["", None]) == []
        repos.path.list_by_status(dbc, ["ready", " ready "])
        assert fake_pool.last[1] == [["ready"]]


class TestPathNodes:
    def test_nodes_ordered_by_index(self, repos, fake_pool, dbc):
        repos.path_node.get_by_path_ids(dbc, [uuid.uuid4()])
        assert fake_pool.last[0].endswith('ORDER BY "path_id" ASC, "index" ASC, "id" ASC')

    def test_lookup_by_path_and_index(self, repos, fake_pool, dbc):
        pid = uuid.uuid4()
        node_id = uuid.uuid4()
        fake_pool.respond(rows=[{"id": node_id, "path_id": pid, "index": 2, "title": "Loops"}])
        node = repos.path_node.get_by_path_and_index(dbc, pid, 2)
        assert node.id == node_id
        assert node.index == 2
        query, params = fake_pool.last
        assert '"index" = %s' in query
        assert params == [pid, 2, 1]

    def test_primary_activity_sorts_first(self, repos, fake_pool, dbc):
        repos.path_node_activity.get_by_path_node_ids(dbc, [uuid.uuid4()])
        assert '"is_primary" DESC, "rank" ASC' in fake_pool.last[0]

    def test_soft_delete_by_path_ids(self, repos, fake_pool, dbc, clock):
        pid = uuid.uuid4()
        fake_pool.respond(rowcount=3)
        assert repos.path_node.soft_delete_by_path_ids(dbc, [pid]) == 3
        assert fake_pool.last[1] == [clock.now, [pid]]



class TestConfiguredWindow:
    def test_settings_supply_default_window(self, store, logger, clock, fake_pool, dbc):
        repos = Repos.build(store, logger, clock=clock, settings=Settings(view_dedupe_seconds=45))
        assert repos.path.view_dedupe_window == timedelta(seconds=45)
        repos.path.record_view(dbc, uuid.uuid4(), uuid.uuid4())
        assert fake_pool.last[1][0] == clock.now - timedelta(seconds=45)

    def test_explicit_zero_overrides_default(self, store, logger, clock, fake_pool, dbc):
        repos = Repos.build(store, logger, clock=clock, settings=Settings(view_dedupe_seconds=45))
        repos.path.record_view(dbc, uuid.uuid4(), uuid.uuid4(), 0)
        assert fake_pool.last[1][0] is None
