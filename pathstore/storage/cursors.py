from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Tuple


def encode_event_cursor(created_at: Optional[datetime], event_id: Optional[uuid.UUID]) -> str:
    """Encode a ``(created_at, id)`` stream position as an opaque string.

    The genesis position (no timestamp) encodes as the empty string.
    """

    if created_at is None:
        return ""
    ts = created_at if created_at.tzinfo else created_at.replace(tzinfo=timezone.utc)
    return f"{ts.isoformat()}|{event_id or uuid.UUID(int=0)}"


def decode_event_cursor(cursor: Optional[str]) -> Tuple[Optional[datetime], Optional[uuid.UUID]]:
    """Decode an event cursor produced by :func:`encode_event_cursor`."""

    if not cursor:
        return None, None
    parts = cursor.split("|", 1)
    if len(parts) != 2:
        raise ValueError("invalid event cursor")
    ts = datetime.fromisoformat(parts[0])
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts, uuid.UUID(parts[1])


__all__ = ["decode_event_cursor", "encode_event_cursor"]
