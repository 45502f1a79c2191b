"""Exceptions raised by ladderbot outside the exchange API layer"""


class LadderBotError(Exception):
    """Base exception for all non-exchange ladderbot errors"""

    pass


class ConfigurationError(LadderBotError):
    """Raised for invalid strategy configuration or missing credentials"""

    pass


class StateStoreError(LadderBotError):
    """Base exception for state persistence failures"""

    pass


class StateCorruptedError(StateStoreError):
    """Raised when an existing state file cannot be parsed or validated"""

    pass


class StateWriteError(StateStoreError):
    """Raised when the state file cannot be written"""

    pass


class RunLockError(LadderBotError):
    """Raised when another invocation already holds the run lock"""

    pass


class FillAnomalyError(LadderBotError):
    """Raised when a tracked order left the book without being filled"""

    def __init__(self, message: str, order_id: str, order_status: str) -> None:
        super().__init__(message)
        self.order_id = order_id
        self.order_status = order_status
