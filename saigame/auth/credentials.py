"""
credentials.py — CredentialStore: remember-me persistence for the login form.

Rules (per opt-in flag, both stored in the local store):
  save_email    on  → username written on successful login, kept on logout
                off → username deleted on login and on logout
  save_password on  → password written ENCRYPTED on successful login, kept on logout
                off → password deleted on login and on logout

The flags themselves live in the store (SaiGame_SaveEmail / SaiGame_SavePassword)
so the choice survives restarts; Settings.save_email / save_password are only
the defaults before the user has ever chosen.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from saigame.config import Settings, settings as default_settings
from saigame.encryption import Cipher
from saigame.store import (
    KeyValueStore,
    SAVE_EMAIL_FLAG_KEY,
    SAVE_PASSWORD_FLAG_KEY,
    SAVED_EMAIL_KEY,
    SAVED_PASSWORD_KEY,
    get_flag,
    set_flag,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedCredentials:
    username: str = ""
    password: str = ""
    save_email: bool = False
    save_password: bool = False


class CredentialStore:
    def __init__(
        self,
        store: KeyValueStore,
        cipher: Cipher,
        config: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._cipher = cipher
        cfg = config or default_settings
        self._default_save_email = cfg.save_email
        self._default_save_password = cfg.save_password

    # -----------------------------------------------------------------------
    # Opt-in flags
    # -----------------------------------------------------------------------

    @property
    def save_email(self) -> bool:
        return get_flag(self._store, SAVE_EMAIL_FLAG_KEY, self._default_save_email)

    @save_email.setter
    def save_email(self, value: bool) -> None:
        set_flag(self._store, SAVE_EMAIL_FLAG_KEY, value)

    @property
    def save_password(self) -> bool:
        return get_flag(self._store, SAVE_PASSWORD_FLAG_KEY, self._default_save_password)

    @save_password.setter
    def save_password(self, value: bool) -> None:
        set_flag(self._store, SAVE_PASSWORD_FLAG_KEY, value)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------

    def remember(self, username: str, password: str) -> None:
        """Called after a successful login."""
        if self.save_email:
            self._store.set(SAVED_EMAIL_KEY, username)
        else:
            self._store.delete(SAVED_EMAIL_KEY)

        if self.save_password:
            self._store.set(SAVED_PASSWORD_KEY, self._cipher.encrypt(password))
        else:
            self._store.delete(SAVED_PASSWORD_KEY)

        logger.debug(
            "Credentials persisted save_email=%s save_password=%s",
            self.save_email, self.save_password,
        )

    def forget_on_logout(self) -> None:
        if not self.save_email:
            self._store.delete(SAVED_EMAIL_KEY)
        if not self.save_password:
            self._store.delete(SAVED_PASSWORD_KEY)

    def load(self) -> SavedCredentials:
        encrypted = self._store.get(SAVED_PASSWORD_KEY, "") or ""
        return SavedCredentials(
            username=self._store.get(SAVED_EMAIL_KEY, "") or "",
            password=self._cipher.decrypt(encrypted),
            save_email=self.save_email,
            save_password=self.save_password,
        )

    def clear(self) -> None:
        for key in (SAVED_EMAIL_KEY, SAVED_PASSWORD_KEY, SAVE_EMAIL_FLAG_KEY, SAVE_PASSWORD_FLAG_KEY):
            self._store.delete(key)
        logger.info("Saved credentials cleared")
