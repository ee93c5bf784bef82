"""
service.py — InventoryService: the player's items for the selected game.

GET /api/v1/games/{game}/inventory?limit&offset&category

Everything besides fetch_items() is a pure read of the cached page, except
merge_granted_items(), through which a gacha opening adds its grants.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from saigame.auth.session import CredentialSession
from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.resource import CachedResource
from saigame.results import Result
from saigame.services.inventory.schemas import InventoryItem, InventoryPage, ItemFilterOptions

logger = logging.getLogger(__name__)


class InventoryService(CachedResource[InventoryPage]):
    def __init__(
        self,
        session: CredentialSession,
        gateway: HttpGateway,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        super().__init__(
            "inventory",
            session,
            gateway,
            path=self._inventory_path,
            decode=InventoryPage.model_validate_json,
            empty=InventoryPage,
            limit=cfg.inventory_limit,
            game_id=cfg.game_id,
            auto_load=cfg.auto_load_inventory,
        )
        self.auto_load_category = cfg.auto_load_inventory_category

    def _inventory_path(self) -> str:
        return f"/api/v1/games/{self.game_id}/inventory"

    @property
    def items(self) -> List[InventoryItem]:
        return self.data.items

    async def fetch_items(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        category: Optional[str] = None,
    ) -> Result[InventoryPage]:
        return await self.fetch(limit, offset, category=category)

    async def auto_fetch(self) -> Result[InventoryPage]:
        return await self.fetch_items(category=self.auto_load_category or None)

    # -----------------------------------------------------------------------
    # Local queries
    # -----------------------------------------------------------------------

    def get_item_by_id(self, item_id: str) -> Optional[InventoryItem]:
        return next((i for i in self.data.items if i.id == item_id), None)

    def items_by_category(self, category: str) -> List[InventoryItem]:
        return [i for i in self.data.items if i.category == category]

    def filter_items(self, options: ItemFilterOptions) -> List[InventoryItem]:
        needle = options.name_search.casefold()

        matched = []
        for item in self.data.items:
            if needle and needle not in item.name.casefold():
                continue
            if options.category and item.category != options.category:
                continue
            if options.rarity and item.rarity != options.rarity:
                continue
            if options.stackable_only and not item.is_stackable:
                continue
            matched.append(item)
        return matched

    def gacha_pack_items(self) -> List[InventoryItem]:
        return [i for i in self.data.items if i.gacha_pack_id]

    def merge_granted_items(self, granted: Iterable[InventoryItem]) -> int:
        """Append newly granted items not already cached; returns how many were added."""
        known = {i.id for i in self.data.items}
        added: List[InventoryItem] = []
        for item in granted:
            if item.id and item.id not in known:
                known.add(item.id)
                added.append(item)
        if not added:
            return 0
        self.data = self.data.model_copy(update={
            "items": [*self.data.items, *added],
            "total": self.data.total + len(added),
        })
        logger.info("Merged %d granted item(s) into inventory", len(added))
        return len(added)
