"""
service.py — ContainerService: the player's item containers.

  fetch_containers(limit, offset)               GET /api/v1/games/{game}/containers (cached)
  fetch_container_items(id, limit, offset)      GET /api/v1/containers/{id}/items (not cached)
"""
from __future__ import annotations

import logging
from typing import List, Optional

from saigame.auth.session import CredentialSession
from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.resource import DECODE_ERRORS, CachedResource
from saigame.results import Ok, Result, decode_failed, precondition_failed
from saigame.services.containers.schemas import Container, ContainerItems, ContainerPage

logger = logging.getLogger(__name__)


class ContainerService(CachedResource[ContainerPage]):
    def __init__(
        self,
        session: CredentialSession,
        gateway: HttpGateway,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        super().__init__(
            "containers",
            session,
            gateway,
            path=self._containers_path,
            decode=ContainerPage.model_validate_json,
            empty=ContainerPage,
            limit=cfg.container_limit,
            game_id=cfg.game_id,
            auto_load=cfg.auto_load_containers,
        )

    def _containers_path(self) -> str:
        return f"/api/v1/games/{self.game_id}/containers"

    @property
    def containers(self) -> List[Container]:
        return self.data.containers

    async def fetch_containers(
        self, limit: Optional[int] = None, offset: Optional[int] = None,
    ) -> Result[ContainerPage]:
        return await self.fetch(limit, offset)

    async def fetch_container_items(
        self,
        container_id: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Result[ContainerItems]:
        failure = self.check_ready(needs_game=False)
        if failure is not None:
            return failure
        if not container_id:
            return precondition_failed("Container ID is required")

        result = await self._gateway.request(
            "GET",
            f"/api/v1/containers/{container_id}/items",
            params={"limit": limit, "offset": offset},
        )
        if not result.ok:
            return result
        try:
            items = ContainerItems.model_validate_json(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("container items", exc, result.value)
        logger.info("Fetched container items container_id=%s count=%d", container_id, len(items.items))
        return Ok(items)

    def get_container_by_id(self, container_id: str) -> Optional[Container]:
        return next((c for c in self.data.containers if c.id == container_id), None)

    def containers_by_type(self, container_type: str) -> List[Container]:
        return [c for c in self.data.containers if c.container_type == container_type]
