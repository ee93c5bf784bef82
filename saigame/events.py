"""
events.py — Session lifecycle events.

Modules react to session transitions (clear caches on logout, auto-load on
login) by subscribing to the session's EventHub. subscribe() hands back an
unsubscribe callable, so there is no add/remove pairing to get wrong.

Callbacks may be plain functions or coroutine functions. Coroutine callbacks
are scheduled as tasks on the running loop; drain() awaits whatever is still
pending (used on shutdown and in tests).
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class SessionEvent(str, Enum):
    login_succeeded = "login_succeeded"
    login_failed = "login_failed"
    refresh_succeeded = "refresh_succeeded"
    refresh_failed = "refresh_failed"
    logout_succeeded = "logout_succeeded"
    logout_server_failed = "logout_server_failed"
    session_cleared = "session_cleared"      # local state wiped (logout or failed refresh)
    profile_updated = "profile_updated"


class EventHub:
    """Per-session listener registry."""

    def __init__(self) -> None:
        self._listeners: dict[SessionEvent, list[Listener]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event: SessionEvent, callback: Listener) -> Callable[[], None]:
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return unsubscribe

    def listener_count(self, event: SessionEvent) -> int:
        return len(self._listeners[event])

    def emit(self, event: SessionEvent, payload: Any = None) -> None:
        """Deliver payload to every listener; a failing listener is logged and skipped."""
        for callback in list(self._listeners[event]):
            try:
                outcome = callback(payload)
            except Exception:
                logger.exception("Listener %r failed for event=%s", callback, event.value)
                continue
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async listener failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Await every async listener task scheduled so far (including ones they schedule)."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
