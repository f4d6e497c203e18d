"""Core module: config, shared types, channels, logging."""

from watchtower.core.channel import ChannelClosedError, Receiver, Sender
from watchtower.core.config import Settings, get_settings, load_settings, reset_settings
from watchtower.core.logging import setup_logging
from watchtower.core.types import (
    ActionCommand,
    ActionKind,
    AlertCategory,
    AlertEvent,
    AlertLevel,
    AlertType,
    PauseTarget,
)

__all__ = [
    "ActionCommand",
    "ActionKind",
    "AlertCategory",
    "AlertEvent",
    "AlertLevel",
    "AlertType",
    "ChannelClosedError",
    "PauseTarget",
    "Receiver",
    "Sender",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
