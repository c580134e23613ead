"""Database context threaded through every repo call.

A ``DBContext`` carries a cancellation token and, optionally, the executor of
an open transaction. Repos never open transactions themselves: they run their
statement on ``dbc.tx`` when present and on the store's pool otherwise.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, List, Optional

from pathstore.storage.errors import Canceled

if TYPE_CHECKING:
    from pathstore.storage.store import Executor


class CancelToken:
    """Cooperative cancellation with an optional monotonic deadline."""

    def __init__(self, deadline: Optional[float] = None) -> None:
        self.deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    @property
    def done(self) -> bool:
        return self.canceled or self.expired

    @property
    def reason(self) -> Optional[str]:
        if self.canceled:
            return self._reason or "canceled"
        if self.expired:
            return "deadline exceeded"
        return None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, ``None`` when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def cancel(self, reason: str = "canceled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancel; returns an unregister function.

        If the token is already canceled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return _unregister
        callback()
        return lambda: None

    def raise_if_done(self) -> None:
        if self.done:
            raise Canceled(self.reason or "canceled", {"deadline": self.deadline})


@dataclass(frozen=True)
class DBContext:
    token: CancelToken = field(default_factory=CancelToken)
    tx: Optional["Executor"] = None

    @classmethod
    def background(cls) -> "DBContext":
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "DBContext":
        return cls(token=CancelToken.with_timeout(seconds))

    @property
    def in_tx(self) -> bool:
        return self.tx is not None

    def with_tx(self, tx: Optional["Executor"]) -> "DBContext":
        return replace(self, tx=tx)


__all__ = ["CancelToken", "DBContext"]
