"""Custom exceptions for Exchange API operations"""


class ExchangeAPIError(Exception):
    """Base exception for all Exchange API errors"""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RateLimitError(ExchangeAPIError):
    """Raised when exchange rate limit is exceeded"""

    pass


class AuthenticationError(ExchangeAPIError):
    """Raised when the API key, signature or timestamp is rejected"""

    pass


class InsufficientFundsError(ExchangeAPIError):
    """Raised when account has insufficient funds for operation"""

    pass


class OrderError(ExchangeAPIError):
    """Raised when order placement or management fails"""

    pass


class NetworkError(ExchangeAPIError):
    """Raised when network communication with exchange fails or times out"""

    pass


class ExchangeNotAvailableError(ExchangeAPIError):
    """Raised when exchange is not available (maintenance, 5xx)"""

    pass


class InvalidOrderError(ExchangeAPIError):
    """Raised when order parameters are invalid"""

    pass
