"""
gacha.py — GachaTransaction: idempotent pack opening.

POST /api/v1/games/{game}/gacha/{gacha_pack_id}
  body {"idempotency_key": ..., "container_id": ...}

Idempotency:
  - one key per open_pack() call (uuid4 unless the caller supplies one)
  - transport failures without an HTTP status (timeout, connection error) are
    retried up to gacha_max_attempts with the SAME key, so a request that
    reached the server before the connection dropped is not applied twice
  - an HTTP error status is final; no retry
  - is_duplicate=True is a successful no-op: the inventory cache is untouched

Non-duplicate grants that landed in the inventory (inventory_item_id set)
are merged into the inventory cache as minimal records; grants routed to
the mailbox appear only via mailbox_message_id.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from saigame.auth.session import CredentialSession
from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.resource import DECODE_ERRORS, GAME_ID_NOT_SET
from saigame.results import FailureKind, Ok, Result, decode_failed, not_authenticated, precondition_failed
from saigame.services.containers.schemas import GachaResult
from saigame.services.inventory.schemas import InventoryItem, ItemDefinition
from saigame.services.inventory.service import InventoryService

logger = logging.getLogger(__name__)


class GachaTransaction:
    def __init__(
        self,
        session: CredentialSession,
        gateway: HttpGateway,
        inventory: InventoryService,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        self._session = session
        self._gateway = gateway
        self._inventory = inventory
        self.game_id = cfg.game_id
        self.max_attempts = max(1, cfg.gacha_max_attempts)

    async def open_pack(
        self,
        gacha_pack_id: str,
        container_id: str,
        *,
        idempotency_key: Optional[str] = None,
    ) -> Result[GachaResult]:
        if not self._session.is_authenticated:
            return not_authenticated()
        if not self.game_id:
            return precondition_failed(GAME_ID_NOT_SET)
        if not gacha_pack_id or not container_id:
            return precondition_failed("Gacha pack ID and container ID are required")

        key = idempotency_key or str(uuid.uuid4())
        path = f"/api/v1/games/{self.game_id}/gacha/{gacha_pack_id}"
        body = {"idempotency_key": key, "container_id": container_id}

        attempt = 0
        while True:
            attempt += 1
            result = await self._gateway.request("POST", path, body)
            if result.ok:
                break
            retryable = result.kind == FailureKind.transport and result.status_code is None
            if not retryable or attempt >= self.max_attempts:
                logger.warning(
                    "Gacha open failed pack=%s attempt=%d/%d: %s",
                    gacha_pack_id, attempt, self.max_attempts, result.message,
                )
                return result
            logger.info("Gacha open retrying pack=%s attempt=%d with the same key", gacha_pack_id, attempt)

        try:
            opened = GachaResult.model_validate_json(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("gacha", exc, result.value)
        opened = opened.model_copy(update={"idempotency_key": key})

        if opened.is_duplicate:
            logger.info("Gacha open was a duplicate pack=%s transaction=%s", gacha_pack_id, opened.transaction_id)
            return Ok(opened)

        self._inventory.merge_granted_items(self._granted_records(opened, container_id))
        logger.info(
            "Gacha opened pack=%s granted=%d transaction=%s",
            gacha_pack_id, len(opened.items_granted), opened.transaction_id,
        )
        return Ok(opened)

    async def open_pack_item(self, item: InventoryItem, *, idempotency_key: Optional[str] = None) -> Result[GachaResult]:
        """Open an inventory item whose definition carries a gacha_pack_id, into its own container."""
        if not item.gacha_pack_id:
            return precondition_failed(f"Item {item.id} is not a gacha pack")
        if not item.item_container_id:
            return precondition_failed(f"Item {item.id} is not in a container")
        return await self.open_pack(
            item.gacha_pack_id, item.item_container_id, idempotency_key=idempotency_key,
        )

    def _granted_records(self, opened: GachaResult, container_id: str) -> List[InventoryItem]:
        user = self._session.current_user
        now = datetime.now(timezone.utc).isoformat()
        return [
            InventoryItem(
                id=granted.inventory_item_id,
                game_id=self.game_id,
                user_id=user.id if user else "",
                item_definition_id=granted.item_definition_id,
                item_container_id=container_id,
                quantity=granted.quantity,
                acquired_at=now,
                last_modified_at=now,
                definition=ItemDefinition(
                    id=granted.item_definition_id,
                    game_id=self.game_id,
                    name=granted.name,
                    category=granted.category,
                ),
            )
            for granted in opened.items_granted
            if granted.inventory_item_id
        ]
