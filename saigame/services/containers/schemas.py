"""
schemas.py — Item container and gacha contracts.

Containers are the grids/bags items live in. position_data and the definition
metadata are game-defined JSON kept as text.
"""
from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from saigame.json_tools import EMPTY_OBJECT, RawJson
from saigame.services.inventory.schemas import InventoryItem


class ContainerDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    studio_id: str = ""
    game_id: str = ""
    name: str = ""
    container_type: str = ""
    grid_cols: int = 0
    grid_rows: int = 0
    is_portable: bool = False
    metadata: RawJson = EMPTY_OBJECT
    created_at: str = ""
    updated_at: str = ""


class Container(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    studio_id: str = ""
    game_id: str = ""
    owner_user_id: str = ""
    item_container_definition_id: str = ""
    container_type: str = ""
    position_data: RawJson = EMPTY_OBJECT
    created_at: str = ""
    updated_at: str = ""
    definition: Optional[ContainerDefinition] = None


class ContainerPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    containers: List[Container] = Field(default_factory=list)
    has_more: bool = False
    limit: int = 0
    offset: int = 0

    @field_validator("containers", mode="before")
    @classmethod
    def null_containers(cls, value: Any) -> Any:
        return [] if value is None else value


class ContainerItems(BaseModel):
    model_config = ConfigDict(extra="ignore")

    container_id: str = ""
    items: List[InventoryItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def null_items(cls, value: Any) -> Any:
        return [] if value is None else value


# ---------------------------------------------------------------------------
# Gacha
# ---------------------------------------------------------------------------

class GrantedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item_definition_id: str = ""
    name: str = ""
    category: str = ""
    quantity: int = 0
    quantity_min: int = 0
    quantity_max: int = 0
    inventory_item_id: Optional[str] = None     # absent when the grant went to the mailbox
    drop_seed: Optional[Union[int, str]] = None
    qty_seed: Optional[Union[int, str]] = None


class GachaResult(BaseModel):
    """
    Outcome of one pack opening.

    is_duplicate=True: the server had already processed idempotency_key and
    performed no new mutation. It is a success, not an error.
    """
    model_config = ConfigDict(extra="ignore")

    is_duplicate: bool = False
    items_granted: List[GrantedItem] = Field(default_factory=list)
    mailbox_message_id: Optional[str] = None
    transaction_id: Optional[str] = None
    idempotency_key: str = ""

    @field_validator("items_granted", mode="before")
    @classmethod
    def null_items(cls, value: Any) -> Any:
        return [] if value is None else value
