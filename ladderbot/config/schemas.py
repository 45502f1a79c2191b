"""
Pydantic schemas for configuration validation.
Defines the structure and validation rules for the ladder strategy,
the exchange connection and process-level settings.
"""

import os
from decimal import Decimal
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ladderbot.core.exceptions import ConfigurationError

MAX_LEVELS = 4


class FillCheckMode(str, Enum):
    """How a tracked order that left the open-order book is interpreted"""

    ABSENCE = "absence"  # not open == filled
    VERIFIED = "verified"  # query the order; cancelled/rejected is an anomaly


class StrategyConfig(BaseModel):
    """DCA ladder strategy configuration, immutable for the whole run"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    symbol: str = Field(
        ...,
        min_length=1,
        description="Exchange symbol (e.g., 'SOLUSDT')",
        examples=["SOLUSDT", "BTCUSDT"],
    )
    trigger_price: Decimal = Field(
        ...,
        gt=0,
        description="Price at or below which the ladder is activated",
    )
    num_levels: int = Field(
        default=4,
        ge=1,
        le=MAX_LEVELS,
        description="Number of DCA buy levels",
    )
    base_amount: Decimal = Field(
        ...,
        gt=0,
        description="Quote currency spent on each level",
    )
    drop_percentage: Decimal = Field(
        default=Decimal("1.0"),
        gt=0,
        lt=100,
        description="Percentage drop between consecutive levels (1.0 = 1%)",
    )
    take_profit_percentage: Decimal = Field(
        default=Decimal("0.8"),
        gt=0,
        description="Take profit percentage per level (0.8 = 0.8%)",
    )
    trailing_stop_percentage: Decimal = Field(
        default=Decimal("2.0"),
        gt=0,
        lt=100,
        description="Retracement from peak that liquidates the position (2.0 = 2%)",
    )
    rearm_after_stop: bool = Field(
        default=False,
        description="Allow a STOPPED run to activate a fresh ladder without operator reset",
    )
    fill_check: FillCheckMode = Field(
        default=FillCheckMode.ABSENCE,
        description="Fill detection mode for orders missing from the open-order list",
    )


class ExchangeSettings(BaseModel):
    """Exchange connection configuration"""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(
        default="https://api.binance.us",
        description="REST endpoint",
        examples=["https://api.binance.us", "https://api.binance.com"],
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Total timeout in seconds for each request",
    )
    recv_window: int = Field(
        default=5000,
        ge=1,
        le=60000,
        description="Signed request validity window in milliseconds",
    )


class AppConfig(BaseModel):
    """Application-wide configuration"""

    model_config = ConfigDict(extra="forbid")

    strategy: StrategyConfig
    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)

    # Persistence
    state_file: Path = Field(default=Path("state.json"), description="Run state document")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    log_to_console: bool = Field(default=True, description="Enable console logging")
    log_to_file: bool = Field(default=False, description="Enable rotating file logging")
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    json_logs: bool = Field(default=False, description="Use JSON format for logs")


class Credentials(BaseModel):
    """API credentials, supplied by the environment only"""

    api_key: SecretStr
    api_secret: SecretStr
    endpoint: str | None = None

    @classmethod
    def from_env(cls) -> "Credentials":
        """
        Read BINANCE_API_KEY, BINANCE_SECRET_KEY and BINANCE_ENDPOINT.

        Raises:
            ConfigurationError: If the key or the secret is missing
        """
        api_key = os.getenv("BINANCE_API_KEY", "").strip()
        api_secret = os.getenv("BINANCE_SECRET_KEY", "").strip()
        missing = [
            name
            for name, value in (("BINANCE_API_KEY", api_key), ("BINANCE_SECRET_KEY", api_secret))
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing API credentials: {', '.join(missing)}")

        endpoint = os.getenv("BINANCE_ENDPOINT", "").strip() or None
        return cls(api_key=api_key, api_secret=api_secret, endpoint=endpoint)
