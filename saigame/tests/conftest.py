"""
Test configuration for the saigame SDK tests.

Provides:
  - FakeGameServer  stateful in-process game server behind httpx.MockTransport
                    (auth, progress, mailbox, inventory, containers, gacha,
                    categories, health) with one-shot response injection
  - FakeClock       controllable clock; its sleep() advances time instead of waiting
  - client / logged_in fixtures: a fully wired SaiClient against the fake server

Token auto-refresh is OFF in the default config; watch tests enable it
explicitly so a fast-forwarding clock never churns refreshes in the background.
"""
from __future__ import annotations

import asyncio
import json
import re
import uuid
from collections import defaultdict
from typing import Any, Callable, Optional, Union

import httpx
import pytest
import pytest_asyncio

from saigame.client import SaiClient
from saigame.config import Settings
from saigame.encryption import AesCipher
from saigame.store import MemoryStore

GAME_ID = "game-1"
USERNAME = "player1"
PASSWORD = "hunter2"
BASE_URL = "http://testserver"
TOKEN_LIFETIME = 3600

Injected = Union[httpx.Response, Exception]


def json_response(status: int, payload: Any) -> httpx.Response:
    return httpx.Response(status, json=payload)


def text_response(status: int, text: str) -> httpx.Response:
    return httpx.Response(status, text=text, headers={"Content-Type": "application/json"})


# ---------------------------------------------------------------------------
# Fake server
# ---------------------------------------------------------------------------

class FakeGameServer:
    def __init__(self, game_id: str = GAME_ID) -> None:
        self.game_id = game_id
        self.requests: list[httpx.Request] = []
        self._injected: dict[tuple[str, str], list[Injected]] = defaultdict(list)

        self.user = {
            "id": "user-1",
            "email": "player1@example.com",
            "username": USERNAME,
            "display_name": "Player One",
            "is_active": True,
            "is_verified": True,
            "created_at": "2026-01-01T00:00:00Z",
        }
        self.expires_in = TOKEN_LIFETIME
        self.rotate_refresh_token = True
        self.access_token = ""
        self.refresh_token = ""
        self._issued = 0

        # progress game_data is kept as raw text, exactly as received
        self.progress: Optional[dict[str, Any]] = None
        self.progress_game_data = "{}"

        self.messages: list[dict[str, Any]] = []
        self.inventory: list[dict[str, Any]] = []
        self.containers: list[dict[str, Any]] = []
        self.container_items: dict[str, list[dict[str, Any]]] = {}
        self.categories = ["weapon", "armor", "consumable"]
        self.gacha_transactions: dict[str, dict[str, Any]] = {}

        g = re.escape(game_id)
        self._routes: list[tuple[str, re.Pattern, Callable[..., httpx.Response], bool]] = [
            ("GET", re.compile(r"/health"), self._health, False),
            ("POST", re.compile(r"/api/v1/auth/register"), self._register, False),
            ("POST", re.compile(r"/api/v1/auth/login"), self._login, False),
            ("POST", re.compile(r"/api/v1/auth/refresh"), self._refresh, False),
            ("POST", re.compile(r"/api/v1/auth/logout"), self._logout, True),
            ("GET", re.compile(r"/api/v1/auth/me"), self._me, True),
            ("GET", re.compile(rf"/api/v1/games/{g}/my-gamer-progress"), self._get_progress, True),
            ("DELETE", re.compile(rf"/api/v1/games/{g}/my-gamer-progress"), self._delete_progress, True),
            ("POST", re.compile(rf"/api/v1/games/{g}/gamer-progress"), self._create_progress, True),
            ("PATCH", re.compile(r"/api/v1/gamer-progress/(?P<pid>[^/]+)"), self._update_progress, True),
            ("GET", re.compile(rf"/api/v1/games/{g}/mailbox/messages"), self._list_messages, True),
            ("GET", re.compile(rf"/api/v1/games/{g}/mailbox/messages/(?P<mid>[^/]+)"), self._read_message, True),
            ("POST", re.compile(rf"/api/v1/games/{g}/mailbox/messages/(?P<mid>[^/]+)/claim"), self._claim, True),
            ("GET", re.compile(rf"/api/v1/games/{g}/inventory"), self._list_inventory, True),
            ("GET", re.compile(r"/api/v1/items/categories"), self._categories, False),
            ("GET", re.compile(rf"/api/v1/games/{g}/containers"), self._list_containers, True),
            ("GET", re.compile(r"/api/v1/containers/(?P<cid>[^/]+)/items"), self._container_items, True),
            ("POST", re.compile(rf"/api/v1/games/{g}/gacha/(?P<pack>[^/]+)"), self._gacha, True),
        ]

    # -- test helpers -------------------------------------------------------

    def inject(self, method: str, path: str, *responses: Injected) -> None:
        """Queue one-shot responses (or exceptions to raise) for METHOD path."""
        self._injected[(method, path)].extend(responses)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def count(self, method: str, path: str) -> int:
        return len(self.calls(method, path))

    def add_message(self, message_id: str, *, status: str = "unread", attachments: Optional[list] = None) -> dict:
        message = {
            "id": message_id,
            "sender_id": None,
            "subject": f"Subject {message_id}",
            "body": f"Body {message_id}",
            "message_type": "reward",
            "status": status,
            "attachments": attachments if attachments is not None else [
                {"type": "item", "definition_id": "def-potion", "quantity": 1},
            ],
            "expires_at": None,
            "read_at": None,
            "claimed_at": None,
            "created_at": "2026-01-02T00:00:00Z",
        }
        self.messages.append(message)
        return message

    def add_item(self, item_id: str, *, name: str, category: str, rarity: str = "common",
                 stackable: bool = False, gacha_pack_id: str = "", container_id: str = "bag-1") -> dict:
        item = {
            "id": item_id,
            "studio_id": "studio-1",
            "game_id": self.game_id,
            "user_id": self.user["id"],
            "item_definition_id": f"def-{item_id}",
            "item_container_id": container_id,
            "grid_x": 0,
            "grid_y": 0,
            "quantity": 1,
            "level": 1,
            "custom_properties": {"color": "red"},
            "private_properties": None,
            "public_properties": {},
            "acquired_at": "2026-01-03T00:00:00Z",
            "last_modified_at": "2026-01-03T00:00:00Z",
            "version": 1,
            "definition": {
                "id": f"def-{item_id}",
                "item_code": item_id.upper(),
                "name": name,
                "category": category,
                "rarity": rarity,
                "base_stats": {"atk": 5},
                "metadata": {"flavor_text": "", "icon": "", "gacha_pack_id": gacha_pack_id},
                "is_stackable": stackable,
                "max_stack_size": 99 if stackable else 1,
            },
        }
        self.inventory.append(item)
        return item

    # -- dispatch -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self._injected.get((request.method, request.url.path))
        if queued:
            injected = queued.pop(0)
            if isinstance(injected, Exception):
                raise injected
            return injected

        for method, pattern, handle, needs_auth in self._routes:
            match = pattern.fullmatch(request.url.path)
            if method != request.method or match is None:
                continue
            if needs_auth and not self._authorized(request):
                return json_response(401, {"message": "Unauthorized"})
            return handle(request, **match.groupdict())
        return json_response(404, {"message": "Not found"})

    def _authorized(self, request: httpx.Request) -> bool:
        return bool(self.access_token) and request.headers.get("Authorization") == f"Bearer {self.access_token}"

    @staticmethod
    def _body(request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content or b"{}")

    def _issue_tokens(self, rotate: bool = True) -> dict[str, Any]:
        self._issued += 1
        self.access_token = f"access-{self._issued}"
        payload: dict[str, Any] = {
            "access_token": self.access_token,
            "expires_in": self.expires_in,
            "user": self.user,
        }
        if rotate:
            self.refresh_token = f"refresh-{self._issued}"
            payload["refresh_token"] = self.refresh_token
        return payload

    # -- auth ---------------------------------------------------------------

    def _health(self, request):
        return json_response(200, {"status": "ok"})

    def _register(self, request):
        body = self._body(request)
        user = {**self.user, "id": "user-new", "email": body["email"], "username": body["username"]}
        return json_response(201, {"user": user, "message": "Registration successful"})

    def _login(self, request):
        body = self._body(request)
        if body.get("username") != USERNAME or body.get("password") != PASSWORD:
            return json_response(401, {"message": "Invalid username or password"})
        return json_response(200, self._issue_tokens())

    def _refresh(self, request):
        if not self.refresh_token or self._body(request).get("refresh_token") != self.refresh_token:
            return json_response(401, {"message": "Invalid refresh token"})
        return json_response(200, self._issue_tokens(rotate=self.rotate_refresh_token))

    def _logout(self, request):
        self.access_token = ""
        self.refresh_token = ""
        return json_response(200, {"message": "Logged out"})

    def _me(self, request):
        return json_response(200, {"user": self.user})

    # -- progress -----------------------------------------------------------

    def _progress_text(self) -> str:
        fields = json.dumps(self.progress)[:-1]
        return f'{fields}, "game_data": {self.progress_game_data}}}'

    @staticmethod
    def _raw_game_data(request: httpx.Request) -> str:
        text = request.content.decode()
        marker = '"game_data":'
        return text[text.index(marker) + len(marker):-1]

    def _get_progress(self, request):
        if self.progress is None:
            return json_response(404, {"message": "Progress not found"})
        return text_response(200, self._progress_text())

    def _create_progress(self, request):
        body = self._body(request)
        self.progress = {
            "id": "progress-1",
            "user_id": body["user_id"],
            "game_id": body["game_id"],
            "level": 1,
            "experience": body["experience"],
            "gold": body["gold"],
            "created_at": "2026-01-04T00:00:00Z",
            "updated_at": "2026-01-04T00:00:00Z",
            "version": 1,
        }
        self.progress_game_data = self._raw_game_data(request)
        return text_response(201, f'{{"data": {self._progress_text()}, "message": "Progress created"}}')

    def _update_progress(self, request, pid):
        if self.progress is None or self.progress["id"] != pid:
            return json_response(404, {"message": "Progress not found"})
        body = self._body(request)
        self.progress["experience"] += body["experience_delta"]
        self.progress["gold"] += body["gold_delta"]
        self.progress["version"] += 1
        self.progress_game_data = self._raw_game_data(request)
        return text_response(200, self._progress_text())

    def _delete_progress(self, request):
        self.progress = None
        return json_response(200, {"message": "Progress deleted"})

    # -- mailbox ------------------------------------------------------------

    @staticmethod
    def _page(request: httpx.Request, default_limit: int) -> tuple[int, int]:
        params = request.url.params
        return int(params.get("limit", default_limit)), int(params.get("offset", 0))

    def _list_messages(self, request):
        limit, offset = self._page(request, 20)
        return json_response(200, {
            "messages": self.messages[offset:offset + limit],
            "total": len(self.messages),
        })

    def _find_message(self, mid: str) -> Optional[dict[str, Any]]:
        return next((m for m in self.messages if m["id"] == mid), None)

    def _read_message(self, request, mid):
        message = self._find_message(mid)
        if message is None:
            return json_response(404, {"message": "Message not found"})
        if message["status"] == "unread":
            message["status"] = "read"
            message["read_at"] = "2026-01-05T00:00:00Z"
        return json_response(200, {"message": message, "message_text": message["body"]})

    def _claim(self, request, mid):
        message = self._find_message(mid)
        if message is None:
            return json_response(404, {"message": "Message not found"})
        if message["status"] == "claimed":
            return json_response(400, {"message": "Already claimed"})
        message["status"] = "claimed"
        return json_response(200, {"rewards": message["attachments"]})

    # -- inventory / containers / categories ------------------------------

    def _list_inventory(self, request):
        limit, offset = self._page(request, 50)
        category = request.url.params.get("category")
        items = [i for i in self.inventory if not category or i["definition"]["category"] == category]
        return json_response(200, {
            "items": items[offset:offset + limit],
            "limit": limit,
            "offset": offset,
            "total": len(items),
        })

    def _categories(self, request):
        return json_response(200, {"categories": self.categories})

    def _list_containers(self, request):
        limit, offset = self._page(request, 50)
        page = self.containers[offset:offset + limit]
        return json_response(200, {
            "containers": page,
            "has_more": offset + limit < len(self.containers),
            "limit": limit,
            "offset": offset,
        })

    def _container_items(self, request, cid):
        return json_response(200, {"container_id": cid, "items": self.container_items.get(cid, [])})

    # -- gacha --------------------------------------------------------------

    def _gacha(self, request, pack):
        body = self._body(request)
        key = body["idempotency_key"]
        if key in self.gacha_transactions:
            previous = self.gacha_transactions[key]
            return json_response(200, {**previous, "is_duplicate": True, "items_granted": []})

        item_id = f"granted-{len(self.gacha_transactions) + 1}"
        self.inventory.append({
            "id": item_id,
            "item_definition_id": "def-sword",
            "item_container_id": body["container_id"],
            "definition": {"id": "def-sword", "name": "Sword", "category": "weapon"},
        })
        transaction = {
            "is_duplicate": False,
            "items_granted": [{
                "item_definition_id": "def-sword",
                "name": "Sword",
                "category": "weapon",
                "quantity": 1,
                "quantity_min": 1,
                "quantity_max": 1,
                "inventory_item_id": item_id,
                "drop_seed": 42,
                "qty_seed": 7,
            }],
            "mailbox_message_id": None,
            "transaction_id": str(uuid.uuid4()),
        }
        self.gacha_transactions[key] = transaction
        return json_response(200, transaction)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.now += seconds
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def make_settings(tmp_path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "base_url": BASE_URL,
        "game_id": GAME_ID,
        "store_path": str(tmp_path / "store.json"),
        "key_path": str(tmp_path / "store.key"),
        "auto_refresh_token": False,
        "auto_load_progress": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def server() -> FakeGameServer:
    return FakeGameServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def cipher(tmp_path) -> AesCipher:
    return AesCipher.from_key_file(tmp_path / "store.key")


def build_client(config: Settings, server: FakeGameServer, store, cipher, clock: FakeClock) -> SaiClient:
    return SaiClient(
        config,
        store=store,
        cipher=cipher,
        transport=httpx.MockTransport(server.handler),
        clock=clock,
        sleep=clock.sleep,
        wall_clock=clock,
    )


@pytest_asyncio.fixture
async def client(settings, server, store, cipher, clock):
    sdk = build_client(settings, server, store, cipher, clock)
    yield sdk
    await sdk.aclose()


@pytest_asyncio.fixture
async def logged_in(client):
    result = await client.session.login(USERNAME, PASSWORD)
    assert result.ok, result
    return client
