"""Exchange API client modules"""

from ladderbot.api.binance_client import BinanceClient
from ladderbot.api.exceptions import (
    AuthenticationError,
    ExchangeAPIError,
    ExchangeNotAvailableError,
    InsufficientFundsError,
    InvalidOrderError,
    NetworkError,
    OrderError,
    RateLimitError,
)

__all__ = [
    "BinanceClient",
    "ExchangeAPIError",
    "RateLimitError",
    "AuthenticationError",
    "InsufficientFundsError",
    "OrderError",
    "NetworkError",
    "ExchangeNotAvailableError",
    "InvalidOrderError",
]
