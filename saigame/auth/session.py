"""
session.py — CredentialSession: login state, tokens and the auto-refresh watch.

State machine:
  ANONYMOUS → AUTHENTICATING → AUTHENTICATED → REFRESHING → AUTHENTICATED
                                                          ↘ ANONYMOUS (refresh failed)

Invariants:
  - is_authenticated ⇔ access_token != ""
  - login() emits exactly one of login_succeeded / login_failed
  - logout() always clears local state, whatever the server says
  - at most one expiration-watch task is alive at any time

Design:
  - The watch is a plain asyncio task polling every token_watch_interval;
    when the remaining lifetime drops inside refresh_lead_seconds it runs
    exactly one refresh() and ends (the refresh starts a fresh watch)
  - clock and sleep are injectable so tests can drive time without waiting
  - Tokens and passwords are never logged
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from saigame.auth.credentials import CredentialStore
from saigame.auth.schemas import LoginResponse, ProfileResponse, RegisterResponse, User
from saigame.config import Settings, settings as default_settings
from saigame.events import EventHub, SessionEvent
from saigame.gateway import HttpGateway
from saigame.results import (
    Failure,
    Ok,
    Result,
    decode_failed,
    not_authenticated,
    precondition_failed,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/v1/auth/login"
REGISTER_PATH = "/api/v1/auth/register"
REFRESH_PATH = "/api/v1/auth/refresh"
LOGOUT_PATH = "/api/v1/auth/logout"
ME_PATH = "/api/v1/auth/me"

NO_REFRESH_TOKEN = "No refresh token available"
SESSION_ENDED_DURING_REFRESH = "Session ended while the refresh was in flight"


class SessionState(str, Enum):
    anonymous = "anonymous"
    authenticating = "authenticating"
    authenticated = "authenticated"
    refreshing = "refreshing"


class CredentialSession:
    """
    The one shared authentication context.

    Service modules read is_authenticated / access_token and subscribe to
    self.events; only this class writes the token fields.
    """

    def __init__(
        self,
        gateway: HttpGateway,
        config: Optional[Settings] = None,
        *,
        credential_store: Optional[CredentialStore] = None,
        events: Optional[EventHub] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        cfg = config or default_settings
        self._gateway = gateway
        self._credentials = credential_store
        self._clock = clock
        self._sleep = sleep
        self.events = events or EventHub()

        self.access_token = ""
        self.refresh_token = ""
        self.expires_in = 0
        self.login_timestamp = 0.0
        self.current_user: Optional[User] = None
        self.state = SessionState.anonymous

        self.auto_refresh_enabled = cfg.auto_refresh_token
        self.refresh_lead_seconds = cfg.refresh_before_expire
        self.watch_interval = cfg.token_watch_interval

        self._watch_task: Optional[asyncio.Task] = None
        self._profile_task: Optional[asyncio.Task] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def seconds_until_expiry(self) -> float:
        if not self.is_authenticated:
            return 0.0
        return max(0.0, self._remaining())

    def _remaining(self) -> float:
        return self.expires_in - (self._clock() - self.login_timestamp)

    # -----------------------------------------------------------------------
    # Login / register
    # -----------------------------------------------------------------------

    async def login(self, username: str, password: str) -> Result[User]:
        if not username or not password:
            failure = precondition_failed("Username and password are required")
            self.events.emit(SessionEvent.login_failed, failure.message)
            return failure

        previous_state = self.state
        self.state = SessionState.authenticating
        result = await self._gateway.request(
            "POST", LOGIN_PATH, {"username": username, "password": password}, authenticated=False,
        )

        parsed: Optional[LoginResponse] = None
        if result.ok:
            try:
                parsed = LoginResponse.model_validate_json(result.value)
            except (ValidationError, ValueError) as exc:
                result = decode_failed("login", exc, result.value)

        if parsed is None:
            self.state = previous_state if self.is_authenticated else SessionState.anonymous
            logger.warning("Login failed: %s", result.message)
            self.events.emit(SessionEvent.login_failed, result.message)
            return result

        self._apply_tokens(parsed)
        self.current_user = parsed.user or User(username=username)
        if self._credentials is not None:
            self._credentials.remember(username, password)
        self._start_watch()

        logger.info("Login succeeded user_id=%s expires_in=%ds", self.current_user.id, self.expires_in)
        self.events.emit(SessionEvent.login_succeeded, self.current_user)
        return Ok(self.current_user)

    async def register(self, email: str, username: str, password: str) -> Result[RegisterResponse]:
        """Create an account. Does not log in; the session state is untouched."""
        result = await self._gateway.request(
            "POST",
            REGISTER_PATH,
            {"email": email, "username": username, "password": password},
            authenticated=False,
        )
        if not result.ok:
            return result
        try:
            registered = RegisterResponse.model_validate_json(result.value)
        except (ValidationError, ValueError) as exc:
            return decode_failed("register", exc, result.value)
        logger.info("Registered user_id=%s", registered.user.id)
        return Ok(registered)

    def set_login_data(
        self,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        user: Optional[User] = None,
    ) -> None:
        """
        Restore a session from tokens obtained elsewhere (e.g. a launcher).

        The login timestamp is "now", the watch starts when a loop is running,
        and login_succeeded fires so modules auto-load as after login().
        """
        self._apply_tokens(LoginResponse(
            access_token=access_token, refresh_token=refresh_token, expires_in=expires_in,
        ))
        self.current_user = user or User()
        self._start_watch()
        self.events.emit(SessionEvent.login_succeeded, self.current_user)

    def _apply_tokens(self, response: LoginResponse) -> None:
        self.access_token = response.access_token
        if response.refresh_token:
            self.refresh_token = response.refresh_token
        self.expires_in = response.expires_in
        self.login_timestamp = self._clock()
        self.state = SessionState.authenticated

    # -----------------------------------------------------------------------
    # Refresh
    # -----------------------------------------------------------------------

    async def refresh(self) -> Result[None]:
        if not self.refresh_token:
            failure = precondition_failed(NO_REFRESH_TOKEN)
            self.events.emit(SessionEvent.refresh_failed, failure.message)
            return failure

        self.state = SessionState.refreshing
        result = await self._gateway.request(
            "POST", REFRESH_PATH, {"refresh_token": self.refresh_token}, authenticated=False,
        )

        if self.state is not SessionState.refreshing:
            # logout() ran while the request was in flight
            return precondition_failed(SESSION_ENDED_DURING_REFRESH)

        parsed: Optional[LoginResponse] = None
        if result.ok:
            try:
                parsed = LoginResponse.model_validate_json(result.value)
            except (ValidationError, ValueError) as exc:
                result = decode_failed("refresh", exc, result.value)

        if parsed is None:
            logger.warning("Token refresh failed, clearing session: %s", result.message)
            self._clear_local()
            self.events.emit(SessionEvent.refresh_failed, result.message)
            self.events.emit(SessionEvent.session_cleared)
            return result

        self._apply_tokens(parsed)
        if parsed.user is not None:
            self.current_user = parsed.user
        self._start_watch()
        self._profile_task = asyncio.ensure_future(self._refresh_profile())

        logger.info("Token refreshed expires_in=%ds", self.expires_in)
        self.events.emit(SessionEvent.refresh_succeeded)
        return Ok(None)

    async def _refresh_profile(self) -> None:
        result = await self.fetch_profile()
        if not result.ok:
            logger.warning("Background profile fetch after refresh failed: %s", result.message)

    # -----------------------------------------------------------------------
    # Logout
    # -----------------------------------------------------------------------

    async def logout(self) -> Result[None]:
        server_failure: Optional[Failure] = None
        if self.is_authenticated:
            result = await self._gateway.request("POST", LOGOUT_PATH, {})
            if not result.ok:
                server_failure = result
                logger.warning("Server logout failed, clearing locally anyway: %s", result.message)

        self._clear_local()
        if self._credentials is not None:
            self._credentials.forget_on_logout()

        if server_failure is not None:
            self.events.emit(SessionEvent.logout_server_failed, server_failure.message)
        self.events.emit(SessionEvent.session_cleared)
        self.events.emit(SessionEvent.logout_succeeded)
        logger.info("Logged out")
        return Ok(None)

    def _clear_local(self) -> None:
        self._cancel_watch()
        if self._profile_task is not None and self._profile_task is not asyncio.current_task():
            self._profile_task.cancel()
        self._profile_task = None
        self.access_token = ""
        self.refresh_token = ""
        self.expires_in = 0
        self.login_timestamp = 0.0
        self.current_user = None
        self.state = SessionState.anonymous

    # -----------------------------------------------------------------------
    # Profile
    # -----------------------------------------------------------------------

    async def fetch_profile(self) -> Result[User]:
        if not self.is_authenticated:
            return not_authenticated()

        result = await self._gateway.request("GET", ME_PATH)
        if not result.ok:
            return result
        try:
            profile = ProfileResponse.model_validate_json(result.value)
        except (ValidationError, ValueError) as exc:
            return decode_failed("profile", exc, result.value)

        if not self.is_authenticated:
            return not_authenticated()
        self.current_user = profile.user
        self.events.emit(SessionEvent.profile_updated, profile.user)
        return Ok(profile.user)

    # -----------------------------------------------------------------------
    # Expiration watch
    # -----------------------------------------------------------------------

    def _start_watch(self) -> None:
        self._cancel_watch()
        if not self.auto_refresh_enabled:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; token watch not started")
            return
        self._watch_task = asyncio.ensure_future(self._watch_expiration())

    def _cancel_watch(self) -> None:
        task = self._watch_task
        self._watch_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _watch_expiration(self) -> None:
        while self.is_authenticated:
            remaining = self._remaining()
            if remaining <= 0:
                logger.warning("Access token expired before it could be refreshed")
                return
            if remaining <= self.refresh_lead_seconds:
                logger.info("Access token expires in %.0fs, refreshing", remaining)
                # detach first: refresh() starts the next watch
                self._watch_task = None
                await self.refresh()
                return
            await self._sleep(self.watch_interval)

    async def close(self) -> None:
        """Stop background tasks (watch + profile fetch). Session data is kept."""
        tasks = [t for t in (self._watch_task, self._profile_task) if t is not None]
        self._watch_task = None
        self._profile_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
