"""Protective actions against the bridge contracts."""

from watchtower.actions.dispatcher import ActionDispatcher, ActionSender, PauseOutcome
from watchtower.actions.exceptions import DispatchError, PauseTimeoutError

__all__ = [
    "ActionDispatcher",
    "ActionSender",
    "DispatchError",
    "PauseOutcome",
    "PauseTimeoutError",
]
