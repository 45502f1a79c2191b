"""DCA ladder strategy package: engine, trailing stop and exchange protocol."""

from ladderbot.strategies.dca.dca_engine import (
    DCALadderEngine,
    PlacedOrder,
    StepResult,
    build_levels,
)
from ladderbot.strategies.dca.dca_trailing_stop import (
    DCATrailingStop,
    TrailingStopResult,
    TrailingStopState,
)
from ladderbot.strategies.dca.exchange_protocol import LadderExchange

__all__ = [
    "DCALadderEngine",
    "PlacedOrder",
    "StepResult",
    "build_levels",
    "DCATrailingStop",
    "TrailingStopResult",
    "TrailingStopState",
    "LadderExchange",
]
