"""
schemas.py — Inventory and item-definition contracts.

Opaque per-item JSON (base_stats, custom/private/public_properties) is kept as
text via RawJson; the item metadata block is structured because the SDK reads
gacha_pack_id from it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saigame.json_tools import EMPTY_OBJECT, RawJson


class ItemMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    flavor_text: str = ""
    icon: str = ""
    gacha_pack_id: str = ""

    @field_validator("flavor_text", "icon", "gacha_pack_id", mode="before")
    @classmethod
    def null_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class ItemDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    studio_id: str = ""
    game_id: str = ""
    item_code: str = ""
    name: str = ""
    category: str = ""
    rarity: str = ""
    base_stats: RawJson = EMPTY_OBJECT
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)
    is_stackable: bool = False
    max_stack_size: int = 1
    grid_width: int = 1
    grid_height: int = 1
    created_by: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("category", "rarity", mode="before")
    @classmethod
    def null_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_gacha_pack(self) -> bool:
        return bool(self.metadata.gacha_pack_id)


class InventoryItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    studio_id: str = ""
    game_id: str = ""
    user_id: str = ""
    item_definition_id: str = ""
    item_container_id: Optional[str] = None
    grid_x: Optional[int] = None
    grid_y: Optional[int] = None
    quantity: int = 1
    level: int = 1
    custom_properties: RawJson = EMPTY_OBJECT
    private_properties: RawJson = EMPTY_OBJECT
    public_properties: RawJson = EMPTY_OBJECT
    acquired_at: str = ""
    last_modified_at: str = ""
    version: int = 0
    definition: Optional[ItemDefinition] = None

    @property
    def name(self) -> str:
        return self.definition.name if self.definition else ""

    @property
    def category(self) -> str:
        return self.definition.category if self.definition else ""

    @property
    def rarity(self) -> str:
        return self.definition.rarity if self.definition else ""

    @property
    def is_stackable(self) -> bool:
        return bool(self.definition and self.definition.is_stackable)

    @property
    def gacha_pack_id(self) -> str:
        return self.definition.metadata.gacha_pack_id if self.definition else ""


class InventoryPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[InventoryItem] = Field(default_factory=list)
    limit: int = 0
    offset: int = 0
    total: int = 0

    @field_validator("items", mode="before")
    @classmethod
    def null_items(cls, value: Any) -> Any:
        return [] if value is None else value


class ItemCategoriesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    categories: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ItemFilterOptions:
    """Local inventory filter; empty fields match everything."""

    name_search: str = ""        # case-insensitive substring of the item name
    category: str = ""           # exact match
    rarity: str = ""             # exact match
    stackable_only: bool = False
