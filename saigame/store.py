"""
store.py — Local persistent key/value store (the SDK's PlayerPrefs).

Key conventions (all values are strings):
  SaiGame_SavedEmail / SaiGame_SaveEmail         remembered username + opt-in flag
  SaiGame_SavedPassword / SaiGame_SavePassword   encrypted password + opt-in flag
  SaiGame_GameId                                 selected game id
  SaiGame_ServerEndpoint                         selected server endpoint
  SaiGame_ItemCategories / ..._ItemCategoriesTime  category cache + epoch seconds

Design:
  - KeyValueStore is a Protocol: get/set/delete/has over strings
  - JsonFileStore persists the whole map as one JSON file on every write,
    replacing the file atomically (write temp file, then os.replace)
  - MemoryStore keeps everything in a dict (tests, ephemeral sessions)
  - Logs keys only, never values (passwords and tokens may pass through)
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Key constants
# ---------------------------------------------------------------------------
KEY_PREFIX = "SaiGame"

SAVED_EMAIL_KEY = f"{KEY_PREFIX}_SavedEmail"
SAVE_EMAIL_FLAG_KEY = f"{KEY_PREFIX}_SaveEmail"
SAVED_PASSWORD_KEY = f"{KEY_PREFIX}_SavedPassword"
SAVE_PASSWORD_FLAG_KEY = f"{KEY_PREFIX}_SavePassword"
GAME_ID_KEY = f"{KEY_PREFIX}_GameId"
SERVER_ENDPOINT_KEY = f"{KEY_PREFIX}_ServerEndpoint"
CATEGORIES_KEY = f"{KEY_PREFIX}_ItemCategories"
CATEGORIES_TIME_KEY = f"{KEY_PREFIX}_ItemCategoriesTime"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Optional[str] = None) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def has(self, key: str) -> bool: ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class MemoryStore:
    """Dict-backed store; nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def has(self, key: str) -> bool:
        return key in self._data


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------

class JsonFileStore(MemoryStore):
    """
    MemoryStore that loads from and saves to a JSON file.

    A missing file starts empty. An unreadable or non-object file is logged and
    treated as empty; the next write replaces it.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Local store %s unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local store %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self._save()
        logger.debug("Local store key written key=%s", key)

    def delete(self, key: str) -> None:
        if not self.has(key):
            return
        super().delete(key)
        self._save()
        logger.debug("Local store key deleted key=%s", key)


# ---------------------------------------------------------------------------
# Flag helpers
# ---------------------------------------------------------------------------

def get_flag(store: KeyValueStore, key: str, default: bool = False) -> bool:
    raw = store.get(key)
    if raw is None:
        return default
    return raw == "1"


def set_flag(store: KeyValueStore, key: str, value: bool) -> None:
    store.set(key, "1" if value else "0")
