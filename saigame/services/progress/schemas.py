"""
schemas.py — Gamer progress contracts.

game_data is the game's own save blob: opaque JSON kept as text and carried
byte-for-byte between server and caller (see decode_progress).
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict

from saigame.json_tools import EMPTY_OBJECT, RawJson, extract_field


class GamerProgress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    user_id: str = ""
    game_id: str = ""
    level: int = 0
    experience: int = 0
    gold: int = 0
    game_data: RawJson = EMPTY_OBJECT
    created_at: str = ""
    updated_at: str = ""
    version: int = 0


class CreateProgressResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: GamerProgress
    message: str = ""


def _with_raw_game_data(body: str) -> dict[str, Any]:
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
    raw = extract_field(body, "game_data")
    record = payload["data"] if isinstance(payload.get("data"), dict) else payload
    record["game_data"] = raw
    return payload


def decode_progress(body: str) -> GamerProgress:
    """Decode a progress record, taking game_data verbatim from the body text."""
    return GamerProgress.model_validate(_with_raw_game_data(body))


def decode_created(body: str) -> CreateProgressResponse:
    """Decode {data, message}; a bare record is accepted as data."""
    payload = _with_raw_game_data(body)
    if not isinstance(payload.get("data"), dict):
        payload = {"data": payload}
    return CreateProgressResponse.model_validate(payload)
