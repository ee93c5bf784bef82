"""
client.py — SaiClient: explicit wiring of every SDK component.

Usage:
    from saigame import SaiClient, configure_logging

    configure_logging()
    async with SaiClient() as client:
        await client.session.login("player", "secret")
        await client.progress.update_progress(500, 100)

Construction order:
  store → cipher → credential store → gateway → session (the gateway's token
  source) → progress / mailbox / inventory / containers → gacha → categories

start() (or entering the context) schedules the category warm-up in the
background; aclose() stops the token watch, waits for event listeners and
closes the HTTP client.
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Awaitable, Callable, Optional

import httpx

from saigame.auth.credentials import CredentialStore
from saigame.auth.session import CredentialSession
from saigame.config import ENDPOINT_URLS, ServerEndpoint, Settings, settings as default_settings
from saigame.encryption import AesCipher, Cipher
from saigame.events import EventHub
from saigame.gateway import HttpGateway
from saigame.results import Result
from saigame.services.containers.gacha import GachaTransaction
from saigame.services.containers.service import ContainerService
from saigame.services.inventory.categories import CategoryCache
from saigame.services.inventory.service import InventoryService
from saigame.services.mailbox.service import MailboxService
from saigame.services.progress.service import GamerProgressService
from saigame.store import GAME_ID_KEY, SERVER_ENDPOINT_KEY, JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s — %(message)s"


def configure_logging(config: Optional[Settings] = None) -> None:
    """Root logging for scripts and games embedding the SDK; never run on import."""
    cfg = config or default_settings
    logging.basicConfig(
        level=logging.DEBUG if cfg.debug else logging.INFO,
        format=LOG_FORMAT,
    )


class SaiClient:
    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        store: Optional[KeyValueStore] = None,
        cipher: Optional[Cipher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = config or default_settings
        self.store = store if store is not None else JsonFileStore(self.settings.store_file)
        self.cipher = cipher or AesCipher.from_key_file(self.settings.key_file)
        self.credentials = CredentialStore(self.store, self.cipher, self.settings)

        self.gateway = HttpGateway(self.settings, transport=transport)
        self.events = EventHub()
        self.session = CredentialSession(
            self.gateway,
            self.settings,
            credential_store=self.credentials,
            events=self.events,
            clock=clock,
            sleep=sleep,
        )
        self.gateway.token_source = lambda: self.session.access_token

        self.progress = GamerProgressService(self.session, self.gateway, self.settings)
        self.mailbox = MailboxService(self.session, self.gateway, self.settings)
        self.inventory = InventoryService(self.session, self.gateway, self.settings)
        self.containers = ContainerService(self.session, self.gateway, self.settings)
        self.gacha = GachaTransaction(self.session, self.gateway, self.inventory, self.settings)
        self.categories = CategoryCache(self.gateway, self.store, self.settings, clock=wall_clock)

        self._restore_selection()
        self._warm_up_task: Optional[asyncio.Task] = None

    def _restore_selection(self) -> None:
        """Apply the endpoint and game id persisted by an earlier run."""
        stored_endpoint = self.store.get(SERVER_ENDPOINT_KEY)
        if stored_endpoint and not self.settings.base_url:
            try:
                endpoint = ServerEndpoint(stored_endpoint)
            except ValueError:
                logger.warning("Ignoring unknown stored server endpoint %r", stored_endpoint)
            else:
                self.gateway.set_base_url(ENDPOINT_URLS[endpoint])

        stored_game_id = self.store.get(GAME_ID_KEY)
        if stored_game_id and not self.settings.game_id:
            self._apply_game_id(stored_game_id)

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated

    # -----------------------------------------------------------------------
    # Game / endpoint selection
    # -----------------------------------------------------------------------

    @property
    def game_id(self) -> str:
        return self.progress.game_id or ""

    def _apply_game_id(self, game_id: str) -> None:
        modules = (self.progress, self.mailbox, self.inventory, self.containers)
        changed = any(module.game_id != game_id for module in modules)
        for module in modules:
            module.game_id = game_id
            if changed:
                module.clear()
        self.gacha.game_id = game_id

    def save_game_id(self, game_id: str) -> None:
        self.store.set(GAME_ID_KEY, game_id)
        self._apply_game_id(game_id)
        logger.info("Game ID saved game_id=%s", game_id)

    def load_game_id(self) -> str:
        return self.store.get(GAME_ID_KEY) or self.settings.game_id

    def select_endpoint(self, endpoint: ServerEndpoint) -> None:
        endpoint = ServerEndpoint(endpoint)
        if self.session.is_authenticated:
            logger.warning("Switching server endpoint while logged in; the session may be rejected")
        self.store.set(SERVER_ENDPOINT_KEY, endpoint.value)
        self.gateway.set_base_url(ENDPOINT_URLS[endpoint])

    async def test_connection(self) -> Result[bool]:
        return await self.gateway.health()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        if self._warm_up_task is None:
            self._warm_up_task = asyncio.ensure_future(self.categories.warm_up())

    async def aclose(self) -> None:
        if self._warm_up_task is not None and not self._warm_up_task.done():
            self._warm_up_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._warm_up_task
        self._warm_up_task = None
        await self.session.close()
        await self.events.drain()
        await self.gateway.aclose()

    async def __aenter__(self) -> "SaiClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
