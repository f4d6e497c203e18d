"""Chain watchers and the indicator evaluation step."""

from watchtower.watchers.base import BaseWatcher
from watchtower.watchers.ethereum import EthereumWatcher
from watchtower.watchers.fuel import FuelWatcher
from watchtower.watchers.indicators import Breach, Indicator, evaluate

__all__ = [
    "BaseWatcher",
    "Breach",
    "EthereumWatcher",
    "FuelWatcher",
    "Indicator",
    "evaluate",
]
