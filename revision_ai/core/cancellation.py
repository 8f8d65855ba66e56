"""
Cooperative cancellation for the async processing chain.

A ``CancellationToken`` is a one-way flag: once cancelled it stays cancelled
and remembers the first reason. Async steps call ``throw_if_cancelled()`` at
each suspension point; nothing is interrupted preemptively.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from loguru import logger

from revision_ai.core.errors import OperationCancelledError

DEFAULT_CANCEL_REASON = "Operation cancelled"
TIMEOUT_REASON = "Operation timed out"

CancelCallback = Callable[["CancellationToken"], None]


class CancellationToken:
    """A token that can be used to cancel long-running operations."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._cancelled_at: datetime | None = None
        self._event: asyncio.Event | None = None
        self._callbacks: list[CancelCallback] = []
        self._timer: asyncio.TimerHandle | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def cancelled_at(self) -> datetime | None:
        return self._cancelled_at

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token. Only the first call has any effect."""
        self._trip(reason)

    def _trip(self, reason: str | None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason or DEFAULT_CANCEL_REASON
        self._cancelled_at = datetime.now(timezone.utc)

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._event is not None:
            self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def dispose(self) -> None:
        """Drop a pending timeout timer without cancelling the token."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def throw_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError(self._reason or DEFAULT_CANCEL_REASON)

    def register(self, callback: CancelCallback) -> Callable[[], None]:
        """
        Call ``callback(token)`` once this token is cancelled.

        Fires immediately when the token is already cancelled. Returns a
        function that removes the callback again.
        """
        if self._cancelled:
            callback(self)
            return lambda: None

        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    @classmethod
    def timeout(cls, duration: float | timedelta) -> "CancellationToken":
        """
        Token that cancels itself with ``"Operation timed out"`` after
        ``duration``. Must be called from inside a running event loop.
        """
        seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
        token = cls()
        loop = asyncio.get_running_loop()
        token._timer = loop.call_later(seconds, token._trip, TIMEOUT_REASON)
        return token

    @classmethod
    def any(cls, tokens: Iterable["CancellationToken"]) -> "CancellationToken":
        """
        Derived token cancelled as soon as any of ``tokens`` is, adopting
        that token's reason. The derived token never cancels its sources.
        """
        return LinkedCancellationToken(tokens)

    def __repr__(self) -> str:
        if self._cancelled:
            return f"{type(self).__name__}(cancelled, reason={self._reason!r})"
        return f"{type(self).__name__}(active)"


class LinkedCancellationToken(CancellationToken):
    """Read-only token observing a set of parent tokens."""

    def __init__(self, parents: Iterable[CancellationToken]) -> None:
        super().__init__()
        self._parents = tuple(parents)
        self._unregister: list[Callable[[], None]] = []

        for parent in self._parents:
            if parent.is_cancelled:
                self._trip(parent.reason)
                return

        for parent in self._parents:
            self._unregister.append(parent.register(self._on_parent_cancelled))

    def _on_parent_cancelled(self, parent: CancellationToken) -> None:
        if self.is_cancelled:
            return
        logger.debug(f"Linked token cancelled by parent: {parent.reason}")
        self._trip(parent.reason)
        for unregister in self._unregister:
            unregister()
        self._unregister.clear()

    def cancel(self, reason: str | None = None) -> None:
        raise TypeError("Linked tokens are cancelled through their source tokens")


class CancellationTokenSource:
    """Owns one live token and can replace it with a fresh one."""

    def __init__(self) -> None:
        self._token = CancellationToken()

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancelled(self) -> bool:
        return self._token.is_cancelled

    def cancel(self, reason: str | None = None) -> None:
        self._token.cancel(reason)

    def reset(self) -> None:
        """Install a fresh token; the previous one keeps its state."""
        self._token = CancellationToken()

    def cancel_and_reset(self, reason: str | None = None) -> None:
        self._token.cancel(reason)
        self._token = CancellationToken()
