"""
schemas.py — Mailbox contracts.

Defines:
  - MailboxMessage       (one message; status unread → read → claimed)
  - MailboxPage          (GET /mailbox/messages: cached state)
  - ReadMessageResponse  (read: wrapped {message, message_text} or a bare message)
  - ClaimMessageResponse (claim: rewards only; the message is stamped locally)
  - MailboxStatusFilter  (local query helper)
  - ClaimAllResult       (outcome of a sequential batch claim)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MailboxStatus(str, Enum):
    unread = "unread"
    read = "read"
    claimed = "claimed"


class MailboxStatusFilter(str, Enum):
    all = "all"
    unread = "unread"
    read = "read"
    claimed = "claimed"
    unclaimed = "unclaimed"     # unread or read, with attachments, not yet claimed


class Attachment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    definition_id: str = ""
    quantity: int = 0


class MailboxMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    sender_id: Optional[str] = None
    subject: str = ""
    body: str = ""
    message_type: str = ""
    status: str = MailboxStatus.unread.value
    attachments: List[Attachment] = Field(default_factory=list)
    expires_at: Optional[str] = None
    read_at: Optional[str] = None
    claimed_at: Optional[str] = None
    created_at: str = ""

    @model_validator(mode="before")
    @classmethod
    def null_attachments(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("attachments") is None:
            data = {**data, "attachments": []}
        return data

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    @property
    def is_claimed(self) -> bool:
        return self.status == MailboxStatus.claimed or bool(self.claimed_at)

    @property
    def is_claimable(self) -> bool:
        return (
            self.status in (MailboxStatus.unread, MailboxStatus.read)
            and self.has_attachments
            and not self.claimed_at
        )


class MailboxPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: List[MailboxMessage] = Field(default_factory=list)
    total: int = 0


class ReadMessageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: MailboxMessage
    message_text: str = ""

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_message(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("message"), dict):
            return {"message": data}
        return data


class Reward(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    definition_id: str = ""
    quantity: int = 0


class ClaimMessageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rewards: List[Reward] = Field(default_factory=list)


@dataclass
class ClaimAllResult:
    claimed: List[str] = field(default_factory=list)       # message ids, in claim order
    rewards: List[Reward] = field(default_factory=list)
    attempted: int = 0
    last_error: Optional[str] = None

    @property
    def claimed_count(self) -> int:
        return len(self.claimed)
