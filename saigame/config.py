"""
config.py — SaiGame SDK settings.

Usage:
    from saigame.config import settings
    print(settings.resolved_base_url)

Every component also accepts an explicit Settings instance, so tests and
embedding games can build their own (Settings(game_id="...", ...)) instead of
relying on the module-level default.
"""
from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerEndpoint(str, Enum):
    local = "local"
    production = "production"


# Preset base URLs for the two hosted environments
ENDPOINT_URLS: dict[ServerEndpoint, str] = {
    ServerEndpoint.local: "http://local-api.saigame.studio:82",
    ServerEndpoint.production: "https://api.saigame.studio",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SAIGAME_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # unknown SAIGAME_* vars are not an error
    )

    # --- Server ---
    server_endpoint: ServerEndpoint = ServerEndpoint.local
    # Full override, e.g. "http://127.0.0.1:8080"; wins over server_endpoint
    base_url: str = ""
    game_id: str = ""

    # --- Transport ---
    request_timeout: float = 30.0
    health_timeout: float = 5.0

    # --- Token lifecycle ---
    auto_refresh_token: bool = True
    refresh_before_expire: int = 60      # seconds of lead before expiry
    token_watch_interval: float = 1.0    # expiration-watch tick

    # --- Remember-me defaults (overridden by the flags persisted in the store) ---
    save_email: bool = False
    save_password: bool = False

    # --- Local persistence ---
    store_path: str = "~/.saigame/store.json"
    key_path: str = "~/.saigame/store.key"

    # --- Caches & pagination ---
    category_cache_ttl: int = 86400      # 24 hours
    mailbox_limit: int = 20
    inventory_limit: int = 50
    container_limit: int = 50

    # --- Auto-load on login ---
    auto_load_progress: bool = True
    auto_load_mailbox: bool = False
    auto_load_inventory: bool = False
    auto_load_inventory_category: str = ""
    auto_load_containers: bool = False

    # --- Gacha ---
    gacha_max_attempts: int = 3

    # --- Application ---
    debug: bool = False

    @property
    def resolved_base_url(self) -> str:
        """base_url when set, else the preset URL of server_endpoint (no trailing slash)."""
        url = self.base_url or ENDPOINT_URLS[self.server_endpoint]
        return url.rstrip("/")

    @property
    def store_file(self) -> Path:
        return Path(self.store_path).expanduser()

    @property
    def key_file(self) -> Path:
        return Path(self.key_path).expanduser()


# Module-level default; components fall back to it when no Settings is passed
settings = Settings()
