"""Run state, persistence and process-level guards"""

from ladderbot.core.exceptions import (
    ConfigurationError,
    FillAnomalyError,
    LadderBotError,
    RunLockError,
    StateCorruptedError,
    StateStoreError,
    StateWriteError,
)
from ladderbot.core.models import (
    STATE_SCHEMA_VERSION,
    LadderLevel,
    RunState,
    RunStatus,
    TrailingStopSnapshot,
)
from ladderbot.core.run_lock import RunLock
from ladderbot.core.state_store import StateStore

__all__ = [
    "LadderBotError",
    "ConfigurationError",
    "StateStoreError",
    "StateCorruptedError",
    "StateWriteError",
    "RunLockError",
    "FillAnomalyError",
    "STATE_SCHEMA_VERSION",
    "LadderLevel",
    "RunState",
    "RunStatus",
    "TrailingStopSnapshot",
    "RunLock",
    "StateStore",
]
