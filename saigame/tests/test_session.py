"""
CredentialSession — login, refresh, logout, profile and the expiration watch.

Groups:
  1. Login (events exactly once, token storage, credential persistence)
  2. Refresh (rotation, failure clears the session, precondition)
  3. Logout (local clear wins over server failure)
  4. Expiration watch (fires inside the lead window, exactly once)
  5. Register / profile / restored sessions
"""
from __future__ import annotations

import asyncio

import httpx
import pytest
import pytest_asyncio

from saigame.auth.session import NO_REFRESH_TOKEN, SessionState
from saigame.events import SessionEvent
from saigame.results import FailureKind
from saigame.tests.conftest import PASSWORD, USERNAME, build_client, json_response, make_settings


def record_events(client) -> list[tuple[SessionEvent, object]]:
    seen: list[tuple[SessionEvent, object]] = []
    for event in SessionEvent:
        client.events.subscribe(event, lambda payload, e=event: seen.append((e, payload)))
    return seen


def names(seen) -> list[SessionEvent]:
    return [event for event, _ in seen]


# ===========================================================================
# GROUP 1: Login
# ===========================================================================

class TestLogin:

    @pytest.mark.asyncio
    async def test_success_stores_tokens_and_user(self, client, server, clock) -> None:
        seen = record_events(client)
        result = await client.session.login(USERNAME, PASSWORD)

        assert result.ok
        session = client.session
        assert session.is_authenticated
        assert session.state is SessionState.authenticated
        assert session.access_token == server.access_token
        assert session.refresh_token == server.refresh_token
        assert session.expires_in == 3600
        assert session.login_timestamp == clock.now
        assert session.current_user.username == USERNAME
        assert names(seen) == [SessionEvent.login_succeeded]

    @pytest.mark.asyncio
    async def test_wrong_password_fires_failure_once(self, client) -> None:
        seen = record_events(client)
        result = await client.session.login(USERNAME, "wrong")

        assert not result.ok
        assert result.status_code == 401
        assert not client.session.is_authenticated
        assert client.session.state is SessionState.anonymous
        assert names(seen) == [SessionEvent.login_failed]
        assert "Invalid username or password" in seen[0][1]

    @pytest.mark.asyncio
    async def test_login_is_not_retried(self, client, server) -> None:
        server.inject("POST", "/api/v1/auth/login", httpx.ConnectError("down"))
        result = await client.session.login(USERNAME, PASSWORD)
        assert not result.ok
        assert server.count("POST", "/api/v1/auth/login") == 1

    @pytest.mark.asyncio
    async def test_undecodable_body_is_a_decode_failure(self, client, server) -> None:
        server.inject("POST", "/api/v1/auth/login", httpx.Response(200, text="not json"))
        seen = record_events(client)
        result = await client.session.login(USERNAME, PASSWORD)
        assert result.kind == FailureKind.decode
        assert result.message.startswith("Parse login response error")
        assert names(seen) == [SessionEvent.login_failed]

    @pytest.mark.asyncio
    async def test_empty_credentials_fail_before_network(self, client, server) -> None:
        seen = record_events(client)
        result = await client.session.login("", "")
        assert result.kind == FailureKind.precondition
        assert server.requests == []
        assert names(seen) == [SessionEvent.login_failed]

    @pytest.mark.asyncio
    async def test_login_remembers_credentials_per_flags(self, client) -> None:
        client.credentials.save_email = True
        client.credentials.save_password = True
        await client.session.login(USERNAME, PASSWORD)

        saved = client.credentials.load()
        assert saved.username == USERNAME
        assert saved.password == PASSWORD


# ===========================================================================
# GROUP 2: Refresh
# ===========================================================================

class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, logged_in, server, clock) -> None:
        session = logged_in.session
        old_access = session.access_token
        clock.advance(100)
        seen = record_events(logged_in)

        result = await session.refresh()
        await logged_in.events.drain()

        assert result.ok
        assert session.access_token != old_access
        assert session.access_token == server.access_token
        assert session.refresh_token == server.refresh_token
        assert session.login_timestamp == clock.now
        assert SessionEvent.refresh_succeeded in names(seen)

    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token_when_not_rotated(self, logged_in, server) -> None:
        server.rotate_refresh_token = False
        before = logged_in.session.refresh_token
        result = await logged_in.session.refresh()
        assert result.ok
        assert logged_in.session.refresh_token == before

    @pytest.mark.asyncio
    async def test_refresh_fetches_profile_in_background(self, logged_in, server) -> None:
        server.user = {**server.user, "display_name": "Renamed"}
        await logged_in.session.refresh()
        task = logged_in.session._profile_task
        assert task is not None
        await task
        assert logged_in.session.current_user.display_name == "Renamed"
        assert server.count("GET", "/api/v1/auth/me") == 1

    @pytest.mark.asyncio
    async def test_profile_failure_does_not_fail_refresh(self, logged_in, server) -> None:
        server.inject("GET", "/api/v1/auth/me", json_response(500, {"message": "boom"}))
        result = await logged_in.session.refresh()
        await logged_in.session._profile_task
        assert result.ok
        assert logged_in.session.is_authenticated

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_session(self, logged_in, server) -> None:
        server.inject("POST", "/api/v1/auth/refresh", json_response(401, {"message": "Invalid refresh token"}))
        seen = record_events(logged_in)

        result = await logged_in.session.refresh()

        assert not result.ok
        assert not logged_in.session.is_authenticated
        assert logged_in.session.state is SessionState.anonymous
        assert names(seen) == [SessionEvent.refresh_failed, SessionEvent.session_cleared]

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_a_precondition(self, client, server) -> None:
        seen = record_events(client)
        result = await client.session.refresh()
        assert result.kind == FailureKind.precondition
        assert result.message == NO_REFRESH_TOKEN
        assert server.requests == []
        assert names(seen) == [SessionEvent.refresh_failed]


# ===========================================================================
# GROUP 3: Logout
# ===========================================================================

class TestLogout:

    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, logged_in, server) -> None:
        seen = record_events(logged_in)
        result = await logged_in.session.logout()

        assert result.ok
        session = logged_in.session
        assert session.access_token == ""
        assert session.refresh_token == ""
        assert session.current_user is None
        assert session.state is SessionState.anonymous
        assert server.count("POST", "/api/v1/auth/logout") == 1
        assert names(seen) == [SessionEvent.session_cleared, SessionEvent.logout_succeeded]

    @pytest.mark.asyncio
    async def test_server_failure_still_clears_locally(self, logged_in, server) -> None:
        server.inject("POST", "/api/v1/auth/logout", httpx.ConnectError("offline"))
        seen = record_events(logged_in)

        result = await logged_in.session.logout()

        assert result.ok
        assert not logged_in.session.is_authenticated
        assert names(seen) == [
            SessionEvent.logout_server_failed,
            SessionEvent.session_cleared,
            SessionEvent.logout_succeeded,
        ]

    @pytest.mark.asyncio
    async def test_logout_when_anonymous_skips_server(self, client, server) -> None:
        result = await client.session.logout()
        assert result.ok
        assert server.count("POST", "/api/v1/auth/logout") == 0

    @pytest.mark.asyncio
    async def test_logout_forgets_unflagged_credentials(self, client) -> None:
        client.credentials.save_email = True
        client.credentials.save_password = False
        await client.session.login(USERNAME, PASSWORD)
        await client.session.logout()

        saved = client.credentials.load()
        assert saved.username == USERNAME
        assert saved.password == ""


# ===========================================================================
# GROUP 4: Expiration watch
# ===========================================================================

@pytest_asyncio.fixture
async def watching_client(tmp_path, server, store, cipher, clock):
    config = make_settings(tmp_path, auto_refresh_token=True, refresh_before_expire=2, token_watch_interval=1.0)
    server.expires_in = 10
    sdk = build_client(config, server, store, cipher, clock)
    yield sdk
    await sdk.aclose()


async def wait_for(predicate, attempts: int = 500) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class TestExpirationWatch:

    @pytest.mark.asyncio
    async def test_refresh_fires_once_inside_lead_window(self, watching_client, server, clock) -> None:
        refreshed_at: list[float] = []
        watching_client.events.subscribe(
            SessionEvent.refresh_succeeded, lambda _: refreshed_at.append(clock.now),
        )
        start = clock.now
        await watching_client.session.login(USERNAME, PASSWORD)
        server.expires_in = 100_000

        await wait_for(lambda: refreshed_at)

        elapsed = refreshed_at[0] - start
        assert 8 <= elapsed < 10
        assert watching_client.session.expires_in == 100_000

        for _ in range(50):
            await asyncio.sleep(0)
        assert server.count("POST", "/api/v1/auth/refresh") == 1
        await watching_client.session.logout()

    @pytest.mark.asyncio
    async def test_second_login_replaces_the_watch(self, watching_client, server) -> None:
        server.expires_in = 100_000
        session = watching_client.session
        await session.login(USERNAME, PASSWORD)
        first = session._watch_task
        await session.login(USERNAME, PASSWORD)
        second = session._watch_task

        assert first is not second
        await asyncio.sleep(0)
        assert first.cancelled() or first.done()
        await session.logout()

    @pytest.mark.asyncio
    async def test_watch_ends_on_logout(self, watching_client, server) -> None:
        server.expires_in = 100_000
        session = watching_client.session
        await session.login(USERNAME, PASSWORD)
        task = session._watch_task
        await session.logout()
        await asyncio.sleep(0)
        assert task.done()
        assert session._watch_task is None

    @pytest.mark.asyncio
    async def test_no_watch_when_auto_refresh_disabled(self, logged_in) -> None:
        assert logged_in.session._watch_task is None


# ===========================================================================
# GROUP 5: Register / profile / restored sessions
# ===========================================================================

class TestRegisterAndProfile:

    @pytest.mark.asyncio
    async def test_register_does_not_log_in(self, client) -> None:
        result = await client.session.register("new@example.com", "newbie", "pw")
        assert result.ok
        assert result.value.user.username == "newbie"
        assert result.value.message == "Registration successful"
        assert not client.session.is_authenticated

    @pytest.mark.asyncio
    async def test_fetch_profile_requires_login(self, client, server) -> None:
        result = await client.session.fetch_profile()
        assert result.kind == FailureKind.precondition
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_fetch_profile_emits_update(self, logged_in, server) -> None:
        seen = record_events(logged_in)
        server.user = {**server.user, "display_name": "New Name"}
        result = await logged_in.session.fetch_profile()
        assert result.ok
        assert logged_in.session.current_user.display_name == "New Name"
        assert names(seen) == [SessionEvent.profile_updated]

    @pytest.mark.asyncio
    async def test_set_login_data_restores_a_session(self, client, server, clock) -> None:
        server.access_token = "external-token"
        client.session.set_login_data("external-token", "external-refresh", 600)

        assert client.session.is_authenticated
        assert client.session.seconds_until_expiry() == 600
        clock.advance(100)
        assert client.session.seconds_until_expiry() == 500

        result = await client.session.fetch_profile()
        assert result.ok
