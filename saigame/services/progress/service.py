"""
service.py — GamerProgressService: the player's progress record for one game.

Operations:
  fetch_progress()                          GET    /api/v1/games/{game}/my-gamer-progress
  create_progress(game_data)                POST   /api/v1/games/{game}/gamer-progress
  update_progress(xp, gold, game_data)      PATCH  /api/v1/gamer-progress/{id}
  delete_progress()                         DELETE /api/v1/games/{game}/my-gamer-progress

game_data handling:
  - request bodies are assembled as text so the blob is embedded unescaped
    (the server stores exactly what the game wrote)
  - caller-supplied blobs must parse as JSON; otherwise the call fails before
    any request is sent
  - update without a new blob resends the cached one unchanged
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from saigame.auth.session import CredentialSession
from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.json_tools import EMPTY_OBJECT, format_json
from saigame.resource import DECODE_ERRORS, CachedResource
from saigame.results import Ok, Result, decode_failed, precondition_failed
from saigame.services.progress.schemas import GamerProgress, decode_created, decode_progress

logger = logging.getLogger(__name__)

NO_CURRENT_PROGRESS = "No current progress found! Create or get progress first."


def _check_game_data(game_data: str) -> Optional[str]:
    try:
        json.loads(game_data)
    except ValueError as exc:
        return f"Invalid game data JSON: {exc}"
    return None


class GamerProgressService(CachedResource[GamerProgress]):
    def __init__(
        self,
        session: CredentialSession,
        gateway: HttpGateway,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        super().__init__(
            "progress",
            session,
            gateway,
            path=self._my_progress_path,
            decode=decode_progress,
            empty=GamerProgress,
            game_id=cfg.game_id,
            auto_load=cfg.auto_load_progress,
        )

    def _my_progress_path(self) -> str:
        return f"/api/v1/games/{self.game_id}/my-gamer-progress"

    # -----------------------------------------------------------------------
    # Cache accessors
    # -----------------------------------------------------------------------

    @property
    def progress(self) -> GamerProgress:
        return self.data

    @property
    def has_progress(self) -> bool:
        return bool(self.data.id)

    @property
    def game_data(self) -> str:
        return self.data.game_data or EMPTY_OBJECT

    @property
    def pretty_game_data(self) -> str:
        return format_json(self.game_data)

    def set_game_data(self, game_data: str) -> Result[None]:
        """Replace the cached blob locally; the next update_progress() sends it."""
        error = _check_game_data(game_data)
        if error is not None:
            return precondition_failed(error)
        self.data = self.data.model_copy(update={"game_data": game_data})
        return Ok(None)

    # -----------------------------------------------------------------------
    # Network operations
    # -----------------------------------------------------------------------

    async def fetch_progress(self) -> Result[GamerProgress]:
        return await self.fetch()

    async def create_progress(self, game_data: Optional[str] = None) -> Result[GamerProgress]:
        failure = self.check_ready()
        if failure is not None:
            return failure

        blob = game_data if game_data is not None else EMPTY_OBJECT
        error = _check_game_data(blob)
        if error is not None:
            return precondition_failed(error)

        user = self._session.current_user
        body = '{"user_id":%s,"game_id":%s,"experience":0,"gold":0,"game_data":%s}' % (
            json.dumps(user.id if user else ""),
            json.dumps(self.game_id),
            blob,
        )
        result = await self._gateway.request(
            "POST", f"/api/v1/games/{self.game_id}/gamer-progress", body,
        )
        if not result.ok:
            return result
        try:
            created = decode_created(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("create progress", exc, result.value)

        self.data = created.data
        logger.info("Progress created id=%s", created.data.id)
        return Ok(created.data)

    async def update_progress(
        self,
        xp_delta: int,
        gold_delta: int,
        new_game_data: Optional[str] = None,
    ) -> Result[GamerProgress]:
        failure = self.check_ready()
        if failure is not None:
            return failure
        if not self.has_progress:
            return precondition_failed(NO_CURRENT_PROGRESS)

        blob = new_game_data if new_game_data is not None else self.game_data
        error = _check_game_data(blob)
        if error is not None:
            return precondition_failed(error)

        body = '{"experience_delta":%d,"gold_delta":%d,"game_data":%s}' % (
            int(xp_delta), int(gold_delta), blob,
        )
        result = await self._gateway.request(
            "PATCH", f"/api/v1/gamer-progress/{self.data.id}", body,
        )
        if not result.ok:
            return result
        try:
            updated = decode_progress(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("update progress", exc, result.value)

        self.data = updated
        logger.info(
            "Progress updated id=%s xp_delta=%d gold_delta=%d", updated.id, xp_delta, gold_delta,
        )
        return Ok(updated)

    async def delete_progress(self) -> Result[None]:
        """Server delete; the local record is cleared whatever the outcome."""
        failure = self.check_ready()
        if failure is not None:
            return failure

        result = await self._gateway.request("DELETE", self._my_progress_path())
        self.clear()
        if not result.ok:
            logger.warning("Server progress delete failed: %s", result.message)
            return result
        logger.info("Progress deleted")
        return Ok(None)
