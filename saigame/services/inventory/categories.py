"""
categories.py — CategoryCache: item categories with a persisted 24h TTL.

Lookup order for get_categories():
  1. in-memory value, if fresh
  2. local store (SaiGame_ItemCategories + SaiGame_ItemCategoriesTime), if fresh
  3. GET /api/v1/items/categories; on success both layers are overwritten

"Fresh" means now - fetched_at < ttl. force_refresh=True skips 1 and 2.
A failed fetch never touches either layer.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError

from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.results import Ok, Result, decode_failed
from saigame.services.inventory.schemas import ItemCategoriesResponse
from saigame.store import CATEGORIES_KEY, CATEGORIES_TIME_KEY, KeyValueStore

logger = logging.getLogger(__name__)

CATEGORIES_PATH = "/api/v1/items/categories"


class CategoryCache:
    def __init__(
        self,
        gateway: HttpGateway,
        store: KeyValueStore,
        config: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        cfg = config or default_settings
        self._gateway = gateway
        self._store = store
        self._clock = clock
        self.ttl = cfg.category_cache_ttl
        self._categories: Optional[List[str]] = None
        self._fetched_at = 0.0

    def _is_fresh(self, fetched_at: float) -> bool:
        return self._clock() - fetched_at < self.ttl

    def _load_stored(self) -> Optional[List[str]]:
        raw = self._store.get(CATEGORIES_KEY)
        raw_time = self._store.get(CATEGORIES_TIME_KEY)
        if not raw or not raw_time:
            return None
        try:
            categories = json.loads(raw)
            fetched_at = float(raw_time)
        except ValueError as exc:
            logger.warning("Stored item categories unreadable, ignoring: %s", exc)
            return None
        if not isinstance(categories, list) or not self._is_fresh(fetched_at):
            return None
        self._categories = [str(c) for c in categories]
        self._fetched_at = fetched_at
        return self._categories

    def cached(self) -> Optional[List[str]]:
        """The fresh cached list (memory, then store), or None."""
        if self._categories is not None and self._is_fresh(self._fetched_at):
            return self._categories
        return self._load_stored()

    async def get_categories(self, force_refresh: bool = False) -> Result[List[str]]:
        if not force_refresh:
            cached = self.cached()
            if cached is not None:
                return Ok(list(cached))

        result = await self._gateway.request("GET", CATEGORIES_PATH)
        if not result.ok:
            logger.warning("Item categories fetch failed: %s", result.message)
            return result
        try:
            response = ItemCategoriesResponse.model_validate_json(result.value)
        except (ValidationError, ValueError) as exc:
            return decode_failed("item categories", exc, result.value)

        self._categories = list(response.categories)
        self._fetched_at = self._clock()
        self._store.set(CATEGORIES_KEY, json.dumps(self._categories))
        self._store.set(CATEGORIES_TIME_KEY, repr(self._fetched_at))
        logger.info("Item categories fetched count=%d", len(self._categories))
        return Ok(list(self._categories))

    async def warm_up(self) -> None:
        """Start-up fetch when nothing fresh is cached; failures are logged only."""
        if self.cached() is not None:
            return
        result = await self.get_categories()
        if not result.ok:
            logger.warning("Item category warm-up failed: %s", result.message)

    def clear(self) -> None:
        self._categories = None
        self._fetched_at = 0.0
        self._store.delete(CATEGORIES_KEY)
        self._store.delete(CATEGORIES_TIME_KEY)
