"""
resource.py — CachedResource: the request → decode → cache lifecycle, written once.

Every service module (progress, mailbox, inventory, containers) is a thin
configuration of this class:

  name: used in log lines and "Parse <name> response error" messages
  path: zero-arg builder for the GET path (reads the current game id)
  decode: body text → state; may raise ValidationError/ValueError/KeyError/TypeError
  empty: factory for the empty-but-well-formed state
  limit: page size; None for unpaged resources

Invariants:
  - the cache is replaced only by a successful fetch, a module mutation, or clear()
  - a failed fetch (transport or decode) leaves the cache and limit/offset untouched
  - clear() never fails and keeps limit/offset
  - session_cleared always clears; login_succeeded auto-fetches when enabled
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from saigame.auth.session import CredentialSession
from saigame.events import SessionEvent
from saigame.gateway import HttpGateway
from saigame.results import Failure, Ok, Result, decode_failed, not_authenticated, precondition_failed

logger = logging.getLogger(__name__)

TState = TypeVar("TState")

GAME_ID_NOT_SET = "Game ID is not set! Call save_game_id() or set SAIGAME_GAME_ID."

DECODE_ERRORS = (ValidationError, ValueError, KeyError, TypeError)


class CachedResource(Generic[TState]):
    def __init__(
        self,
        name: str,
        session: CredentialSession,
        gateway: HttpGateway,
        *,
        path: Callable[[], str],
        decode: Callable[[str], TState],
        empty: Callable[[], TState],
        limit: Optional[int] = None,
        game_id: Optional[str] = None,
        auto_load: bool = False,
    ) -> None:
        self.name = name
        self._session = session
        self._gateway = gateway
        self._path = path
        self._decode = decode
        self._empty = empty
        self.limit = limit
        self.offset = 0
        self.game_id = game_id
        self.data: TState = empty()

        self._unsubscribe = [
            session.events.subscribe(SessionEvent.session_cleared, self._on_session_cleared),
        ]
        if auto_load:
            self._unsubscribe.append(
                session.events.subscribe(SessionEvent.login_succeeded, self._on_login),
            )

    # -----------------------------------------------------------------------
    # Preconditions
    # -----------------------------------------------------------------------

    def check_ready(self, *, needs_game: bool = True) -> Optional[Failure]:
        """Synchronous gate run before every network call."""
        if not self._session.is_authenticated:
            return not_authenticated()
        if needs_game and self.game_id is not None and not self.game_id:
            return precondition_failed(GAME_ID_NOT_SET)
        return None

    # -----------------------------------------------------------------------
    # Fetch / clear
    # -----------------------------------------------------------------------

    async def fetch(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        **params: Any,
    ) -> Result[TState]:
        failure = self.check_ready()
        if failure is not None:
            return failure

        query: dict[str, Any] = dict(params)
        paged = self.limit is not None
        page_limit = limit if limit is not None else self.limit
        page_offset = offset if offset is not None else self.offset
        if paged:
            query["limit"] = page_limit
            query["offset"] = page_offset

        result = await self._gateway.request("GET", self._path(), params=query or None)
        if not result.ok:
            logger.warning("Fetch %s failed: %s", self.name, result.message)
            return result

        try:
            state = self._decode(result.value)
        except DECODE_ERRORS as exc:
            logger.warning("Fetch %s returned an undecodable body: %s", self.name, exc)
            return decode_failed(self.name, exc, result.value)

        # the page cursor moves together with the cached page
        self.data = state
        if paged:
            self.limit = page_limit
            self.offset = page_offset
        logger.info("Fetched %s", self.name)
        return Ok(state)

    def clear(self) -> None:
        self.data = self._empty()
        logger.debug("Cleared %s cache", self.name)

    # -----------------------------------------------------------------------
    # Session hooks
    # -----------------------------------------------------------------------

    def _on_session_cleared(self, _payload: Any = None) -> None:
        self.clear()

    async def _on_login(self, _payload: Any = None) -> None:
        result = await self.auto_fetch()
        if not result.ok:
            logger.warning("Auto-load of %s after login failed: %s", self.name, result.message)

    async def auto_fetch(self) -> Result[TState]:
        """What login_succeeded triggers; modules override to add filters."""
        return await self.fetch()

    def detach(self) -> None:
        """Drop the session subscriptions (the module stops reacting to login/logout)."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
