from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from pathstore.storage import sql
from pathstore.storage.dbctx import DBContext
from pathstore.storage.errors import RecordNotFound
from pathstore.storage.models import NIL_ID, UserEvent, UserEventCursor, is_zero_id
from pathstore.storage.repo import EntityRepo

DEFAULT_PAGE_LIMIT = 500
MAX_PAGE_LIMIT = 1000


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit <= 0:
        return DEFAULT_PAGE_LIMIT
    return min(limit, MAX_PAGE_LIMIT)


class UserEventRepo(EntityRepo[UserEvent]):
    """Append-only learner event log.

    Ingestion is idempotent on ``(user_id, client_event_id)``; consumers page
    through a user's stream in ``(created_at, id)`` order.
    """

    table = "user_event"
    model = UserEvent
    natural_key = ("user_id", "client_event_id")
    json_columns = frozenset({"data"})

    def _fill(self, events: Optional[Sequence[Optional[UserEvent]]]) -> List[UserEvent]:
        out = []
        now = self.clock()
        for event in events or []:
            if event is None:
                continue
            if not event.client_event_id.strip():
                event.client_event_id = str(uuid.uuid4())
            if event.occurred_at is None:
                event.occurred_at = now
            out.append(event)
        return out

    def create(self, dbc: DBContext, rows: Optional[Sequence[Optional[UserEvent]]]) -> List[UserEvent]:
        return super().create(dbc, self._fill(rows))

    def create_ignore_duplicates(
        self, dbc: DBContext, rows: Optional[Sequence[Optional[UserEvent]]]
    ) -> int:
        return super().create_ignore_duplicates(dbc, self._fill(rows))

    def list_after_cursor(
        self,
        dbc: DBContext,
        user_id: Optional[uuid.UUID],
        after_created_at: Optional[datetime] = None,
        after_id: Optional[uuid.UUID] = None,
        limit: int = 0,
    ) -> List[UserEvent]:
        """Events of ``user_id`` strictly after ``(after_created_at, after_id)``.

        Without ``after_created_at`` the stream is read from the start.
        """
        if is_zero_id(user_id):
            return []
        clauses = [sql.eq("user_id")]
        params: List[object] = [user_id]
        if after_created_at is not None:
            clauses.append("(created_at > %s OR (created_at = %s AND id > %s))")
            params.extend([after_created_at, after_created_at, after_id or NIL_ID])
        return self._select(
            dbc,
            "list_after_cursor",
            clauses,
            params,
            ("created_at", "id"),
            limit=clamp_limit(limit),
        )

    def get_by_user_id(self, dbc: DBContext, user_id: Optional[uuid.UUID]) -> List[UserEvent]:
        return self._get_by_column(
            dbc, "get_by_user_id", "user_id", [user_id], ("-created_at", "-id")
        )

    def get_by_user_and_path_id(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], path_id: Optional[uuid.UUID]
    ) -> List[UserEvent]:
        if is_zero_id(user_id) or is_zero_id(path_id):
            return []
        return self._select(
            dbc,
            "get_by_user_and_path_id",
            [sql.eq("user_id"), sql.eq("path_id")],
            [user_id, path_id],
            ("-created_at", "-id"),
        )


class UserEventCursorRepo(EntityRepo[UserEventCursor]):
    table = "user_event_cursor"
    model = UserEventCursor
    natural_key = ("user_id", "consumer")
    upsert_columns = ("last_created_at", "last_event_id")

    def get(
        self, dbc: DBContext, user_id: Optional[uuid.UUID], consumer: Optional[str]
    ) -> Optional[UserEventCursor]:
        """Return the consumer's cursor.

        Raises ``RecordNotFound`` when the consumer has never advanced, so
        callers can tell "no cursor yet" apart from an empty stream.
        """
        consumer = (consumer or "").strip()
        if is_zero_id(user_id) or not consumer:
            return None
        rows = self._select(
            dbc,
            "get",
            [sql.eq("user_id"), sql.eq("consumer")],
            [user_id, consumer],
            limit=1,
        )
        if not rows:
            raise RecordNotFound(
                "event cursor not found", {"user_id": str(user_id), "consumer": consumer}
            )
        return rows[0]

    def get_by_user_ids(self, dbc: DBContext, user_ids: Optional[Iterable[Optional[uuid.UUID]]]) -> List[UserEventCursor]:
        return self._get_by_column(
            dbc, "get_by_user_ids", "user_id", user_ids, ("user_id", "consumer")
        )


__all__ = [
    "DEFAULT_PAGE_LIMIT",
    "MAX_PAGE_LIMIT",
    "UserEventCursorRepo",
    "UserEventRepo",
    "clamp_limit",
]
