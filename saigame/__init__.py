"""
saigame — async Python client SDK for the SaiGame game-services API.

Re-exports the public surface so games can `from saigame import SaiClient`.
"""
from saigame.client import SaiClient, configure_logging
from saigame.config import ServerEndpoint, Settings
from saigame.events import SessionEvent
from saigame.results import Failure, FailureKind, Ok, SaiGameError

__all__ = [
    "SaiClient",
    "configure_logging",
    "ServerEndpoint",
    "Settings",
    "SessionEvent",
    "Failure",
    "FailureKind",
    "Ok",
    "SaiGameError",
]
