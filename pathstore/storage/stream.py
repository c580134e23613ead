"""Per-consumer paging over the user event log."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional

from pathstore.config import Settings, get_settings
from pathstore.logging import get_logger
from pathstore.storage.cursors import encode_event_cursor
from pathstore.storage.dbctx import DBContext
from pathstore.storage.errors import InvalidArgument, RecordNotFound
from pathstore.storage.models import UserEvent, UserEventCursor, is_zero_id
from pathstore.storage.repos.events import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    UserEventCursorRepo,
    UserEventRepo,
    clamp_limit,
)
from pathstore.storage.store import StoreHandle

if TYPE_CHECKING:
    from pathstore.storage.repos.registry import Repos

Handler = Callable[[DBContext, List[UserEvent]], None]


@dataclass
class PageResult:
    processed: int = 0
    has_more: bool = False
    cursor: str = ""


class EventStreamConsumer:
    """Apply a user's events page by page, advancing a named cursor.

    Each page runs in one transaction: the handler's writes and the cursor
    advance commit together or not at all, so a failed page is re-read on
    the next call.
    """

    def __init__(
        self,
        store: StoreHandle,
        events: UserEventRepo,
        cursors: UserEventCursorRepo,
        consumer: str,
        page_size: int = DEFAULT_PAGE_LIMIT,
    ) -> None:
        consumer = (consumer or "").strip()
        if not consumer:
            raise InvalidArgument("consumer name is required")
        self.store = store
        self.events = events
        self.cursors = cursors
        self.consumer = consumer
        # one row is held back to detect whether the stream continues
        self.page_size = min(clamp_limit(page_size), MAX_PAGE_LIMIT - 1)
        self.logger = get_logger(__name__).bind(consumer=consumer)

    @classmethod
    def for_repos(
        cls,
        store: StoreHandle,
        repos: "Repos",
        consumer: str,
        settings: Optional[Settings] = None,
    ) -> "EventStreamConsumer":
        settings = settings or get_settings()
        return cls(
            store,
            repos.user_event,
            repos.user_event_cursor,
            consumer,
            page_size=settings.event_page_size,
        )

    def _load_cursor(self, dbc: DBContext, user_id: uuid.UUID) -> UserEventCursor:
        try:
            cursor = self.cursors.get(dbc, user_id, self.consumer)
        except RecordNotFound:
            cursor = None
        return cursor or UserEventCursor(user_id=user_id, consumer=self.consumer)

    def process_page(
        self, dbc: Optional[DBContext], user_id: Optional[uuid.UUID], handler: Handler
    ) -> PageResult:
        if is_zero_id(user_id):
            return PageResult()

        def _run(tx: DBContext) -> PageResult:
            cursor = self._load_cursor(tx, user_id)
            page = self.events.list_after_cursor(
                tx,
                user_id,
                cursor.last_created_at,
                cursor.last_event_id,
                limit=self.page_size + 1,
            )
            has_more = len(page) > self.page_size
            page = page[: self.page_size]
            if not page:
                return PageResult(
                    cursor=encode_event_cursor(cursor.last_created_at, cursor.last_event_id)
                )
            handler(tx, page)
            last = page[-1]
            cursor.last_created_at = last.created_at
            cursor.last_event_id = last.id
            self.cursors.upsert(tx, cursor)
            return PageResult(
                processed=len(page),
                has_more=has_more,
                cursor=encode_event_cursor(last.created_at, last.id),
            )

        result = self.store.run_in_tx(dbc, _run)
        if result.processed:
            self.logger.debug(
                "event_page_processed",
                user_id=str(user_id),
                processed=result.processed,
                has_more=result.has_more,
            )
        return result

    def drain(
        self,
        dbc: Optional[DBContext],
        user_id: Optional[uuid.UUID],
        handler: Handler,
        max_pages: Optional[int] = None,
    ) -> int:
        """Process pages until the tail (or ``max_pages``); returns events processed."""
        total = 0
        pages = 0
        while max_pages is None or pages < max_pages:
            if dbc is not None:
                dbc.token.raise_if_done()
            result = self.process_page(dbc, user_id, handler)
            total += result.processed
            pages += 1
            if not result.has_more:
                break
        return total


__all__ = ["EventStreamConsumer", "Handler", "PageResult"]
