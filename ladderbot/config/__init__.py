"""Configuration management modules"""

from ladderbot.config.manager import ConfigManager
from ladderbot.config.schemas import (
    AppConfig,
    Credentials,
    ExchangeSettings,
    FillCheckMode,
    StrategyConfig,
)

__all__ = [
    "ConfigManager",
    "AppConfig",
    "Credentials",
    "ExchangeSettings",
    "FillCheckMode",
    "StrategyConfig",
]
