"""
service.py — MailboxService: the player's in-game mail and attachment claims.

Claim contract: POST .../claim answers {rewards: [...]} only. The cached
message is then stamped locally (status "claimed", claimed_at = now, UTC ISO).

claim_all_unclaimed():
  - eligible = unread/read messages with attachments and no claimed_at
  - claims run one after another, never concurrently
  - a failure does not undo earlier claims; the batch reports claimed ids,
    attempted count and the last error
  - every claim failing → Failure with the last error
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from saigame.auth.session import CredentialSession
from saigame.config import Settings, settings as default_settings
from saigame.gateway import HttpGateway
from saigame.resource import DECODE_ERRORS, CachedResource
from saigame.results import Failure, Ok, Result, decode_failed, precondition_failed
from saigame.services.mailbox.schemas import (
    ClaimAllResult,
    ClaimMessageResponse,
    MailboxMessage,
    MailboxPage,
    MailboxStatus,
    MailboxStatusFilter,
    ReadMessageResponse,
)

logger = logging.getLogger(__name__)

NO_UNCLAIMED_MESSAGES = "No unclaimed messages found."
NOTHING_CLAIMED = "Failed to claim any messages."


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MailboxService(CachedResource[MailboxPage]):
    def __init__(
        self,
        session: CredentialSession,
        gateway: HttpGateway,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        super().__init__(
            "mailbox",
            session,
            gateway,
            path=self._messages_path,
            decode=MailboxPage.model_validate_json,
            empty=MailboxPage,
            limit=cfg.mailbox_limit,
            game_id=cfg.game_id,
            auto_load=cfg.auto_load_mailbox,
        )

    def _messages_path(self) -> str:
        return f"/api/v1/games/{self.game_id}/mailbox/messages"

    @property
    def messages(self) -> List[MailboxMessage]:
        return self.data.messages

    @property
    def has_messages(self) -> bool:
        return bool(self.data.messages)

    # -----------------------------------------------------------------------
    # Local queries
    # -----------------------------------------------------------------------

    def get_message_by_id(self, message_id: str) -> Optional[MailboxMessage]:
        return next((m for m in self.data.messages if m.id == message_id), None)

    def unread_messages(self) -> List[MailboxMessage]:
        return [m for m in self.data.messages if m.status == MailboxStatus.unread]

    def unclaimed_messages(self) -> List[MailboxMessage]:
        return [m for m in self.data.messages if m.is_claimable]

    def messages_by_status(self, status: MailboxStatusFilter) -> List[MailboxMessage]:
        if status == MailboxStatusFilter.all:
            return list(self.data.messages)
        if status == MailboxStatusFilter.unclaimed:
            return self.unclaimed_messages()
        return [m for m in self.data.messages if m.status == status.value]

    def _replace_message(self, message: MailboxMessage) -> None:
        messages = [message if m.id == message.id else m for m in self.data.messages]
        self.data = self.data.model_copy(update={"messages": messages})

    # -----------------------------------------------------------------------
    # Network operations
    # -----------------------------------------------------------------------

    async def fetch_messages(
        self, limit: Optional[int] = None, offset: Optional[int] = None,
    ) -> Result[MailboxPage]:
        return await self.fetch(limit, offset)

    async def read_message(self, message_id: str) -> Result[ReadMessageResponse]:
        failure = self.check_ready()
        if failure is not None:
            return failure
        if not message_id:
            return precondition_failed("Message ID is required")

        result = await self._gateway.request("GET", f"{self._messages_path()}/{message_id}")
        if not result.ok:
            return result
        try:
            response = ReadMessageResponse.model_validate_json(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("read message", exc, result.value)

        self._replace_message(response.message)
        return Ok(response)

    async def claim_message(self, message_id: str) -> Result[ClaimMessageResponse]:
        failure = self.check_ready()
        if failure is not None:
            return failure
        if not message_id:
            return precondition_failed("Message ID is required")
        cached = self.get_message_by_id(message_id)
        if cached is not None and cached.is_claimed:
            return precondition_failed(f"Message {message_id} is already claimed")

        result = await self._gateway.request(
            "POST", f"{self._messages_path()}/{message_id}/claim", {},
        )
        if not result.ok:
            return result
        try:
            response = ClaimMessageResponse.model_validate_json(result.value)
        except DECODE_ERRORS as exc:
            return decode_failed("claim message", exc, result.value)

        cached = self.get_message_by_id(message_id)
        if cached is not None:
            self._replace_message(cached.model_copy(update={
                "status": MailboxStatus.claimed.value,
                "claimed_at": _utc_now_iso(),
            }))
        logger.info("Claimed message id=%s rewards=%d", message_id, len(response.rewards))
        return Ok(response)

    async def claim_all_unclaimed(self) -> Result[ClaimAllResult]:
        failure = self.check_ready()
        if failure is not None:
            return failure

        eligible = [m.id for m in self.unclaimed_messages()]
        if not eligible:
            return precondition_failed(NO_UNCLAIMED_MESSAGES)

        outcome = ClaimAllResult(attempted=len(eligible))
        last_failure: Optional[Failure] = None
        for message_id in eligible:
            result = await self.claim_message(message_id)
            if result.ok:
                outcome.claimed.append(message_id)
                outcome.rewards.extend(result.value.rewards)
            else:
                last_failure = result
                outcome.last_error = result.message
                logger.warning("Claim of message id=%s failed: %s", message_id, result.message)

        logger.info("Claim-all finished claimed=%d attempted=%d", outcome.claimed_count, outcome.attempted)
        if not outcome.claimed:
            if last_failure is not None:
                return last_failure
            return precondition_failed(NOTHING_CLAIMED)
        return Ok(outcome)
