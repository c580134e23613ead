import os
import sys
from collections import deque
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
import structlog  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pathstore.storage.repos.registry import Repos  # noqa: E402
from pathstore.storage.schema import REQUIRED_TABLES  # noqa: E402
from pathstore.storage.store import StoreHandle  # noqa: E402

TEST_DATABASE_URL = os.environ.get("PATHSTORE_TEST_DATABASE_URL")


class FakeCursor:
    def __init__(self, rows=None, rowcount=0):
        self._rows = rows
        self.description = [("col",)] if rows is not None else None
        self.rowcount = rowcount if rows is None else (rowcount or len(rows))

    def fetchall(self):
        return list(self._rows or [])


class FakeConnection:
    """Connection stand-in that records statements into the owning pool."""

    def __init__(self, pool):
        self.pool = pool
        self.canceled = 0

    def execute(self, query, params=None):
        self.pool.statements.append((query, params))
        if self.pool.fail_on and self.pool.fail_on in query:
            raise self.pool.fail_with
        if query.startswith("SET TRANSACTION") or "set_config('statement_timeout'" in query:
            return FakeCursor()
        if self.pool.responses:
            rows, rowcount = self.pool.responses.popleft()
            return FakeCursor(rows, rowcount)
        return FakeCursor()

    @contextmanager
    def transaction(self):
        self.pool.events.append("begin")
        try:
            yield
        except BaseException:
            self.pool.events.append("rollback")
            raise
        if self.pool.commit_error is not None:
            self.pool.events.append("rollback")
            raise self.pool.commit_error
        self.pool.events.append("commit")

    def cancel(self):
        self.canceled += 1


class FakePool:
    """Pool stub: hands out recording connections, never touches a database."""

    def __init__(self):
        self.statements = []
        self.events = []
        self.responses = deque()
        self.fail_on = None
        self.fail_with = None
        self.commit_error = None
        self.checkouts = 0
        self.closed = False

    def respond(self, rows=None, rowcount=0):
        self.responses.append((rows, rowcount))

    @contextmanager
    def connection(self, timeout=None):
        self.checkouts += 1
        yield FakeConnection(self)

    def close(self):
        self.closed = True

    @property
    def queries(self):
        return [q for q, _ in self.statements]

    @property
    def last(self):
        return self.statements[-1]


class FixedClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
def store(fake_pool):
    return StoreHandle("postgresql://unit-test", pool=fake_pool)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def logger():
    return structlog.get_logger("tests")


@pytest.fixture
def repos(store, logger, clock):
    return Repos.build(store, logger, clock=clock)


@pytest.fixture
def pg_store():
    """Live store with a freshly applied, empty schema."""
    if not TEST_DATABASE_URL:
        pytest.skip("PATHSTORE_TEST_DATABASE_URL not set")
    handle = StoreHandle(TEST_DATABASE_URL, min_size=1, max_size=4)
    handle.apply_schema()
    handle.pool_executor.execute(
        _background_token(),
        "TRUNCATE {} CASCADE".format(", ".join(f'"{t}"' for t in REQUIRED_TABLES)),
    )
    yield handle
    handle.close()


@pytest.fixture
def pg_repos(pg_store, logger, clock):
    return Repos.build(pg_store, logger, clock=clock)


def _background_token():
    from pathstore.storage.dbctx import CancelToken

    return CancelToken()
