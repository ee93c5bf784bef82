"""
schemas.py — Auth wire contracts (Pydantic v2).

Defines:
  - User              (profile record embedded in every auth response)
  - LoginResponse     (login + refresh: tokens, lifetime, user)
  - RegisterResponse  (new account: user + server message)
  - ProfileResponse   (GET /auth/me: accepts {user: {...}} or the bare user)

Server field names are snake_case and used as-is. Unknown fields are ignored
so server additions never break decoding.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator


class User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    email: str = ""
    username: str = ""
    display_name: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    created_at: str = ""


class LoginResponse(BaseModel):
    """
    Body of POST /auth/login and POST /auth/refresh.

    refresh_token may be absent on refresh when the server does not rotate it;
    the session then keeps its current refresh token.
    """
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0          # seconds of access-token lifetime
    user: Optional[User] = None


class RegisterResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: User
    message: str = ""


class ProfileResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: User

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_user(cls, data: Any) -> Any:
        if isinstance(data, dict) and "user" not in data:
            return {"user": data}
        return data
