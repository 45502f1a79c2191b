"""
DCA Trailing Stop.

Global trailing stop for the ladder, armed by the first take-profit fill:
- Activates exactly once per run, at the price observed when the first
  sell fill is detected
- Tracks the peak price as a ratchet (never lowered)
- Stop price is a percentage below the peak
- Programmatic execution: the engine liquidates at market, no exchange-side
  stop order exists

Usage:
    ts = DCATrailingStop(Decimal("2.0"))
    ts.activate(state.trailing_stop, current_price)
    result = ts.evaluate(state.trailing_stop, current_price)
    if result.should_exit:
        # Cancel take-profits and sell the remainder at market
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from ladderbot.core.models import TrailingStopSnapshot


class TrailingStopState(str, Enum):
    """Current state of the trailing stop."""

    INACTIVE = "inactive"  # No take-profit has filled yet
    ACTIVE = "active"  # Tracking the peak
    TRIGGERED = "triggered"  # Price at or below stop, exit signal


@dataclass
class TrailingStopResult:
    """Result of a trailing stop evaluation."""

    state: TrailingStopState
    should_exit: bool
    peak_price: Decimal = Decimal("0")
    stop_price: Decimal | None = None
    peak_raised: bool = False
    distance_to_stop_pct: Decimal | None = None
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "should_exit": self.should_exit,
            "peak_price": str(self.peak_price),
            "stop_price": str(self.stop_price) if self.stop_price is not None else None,
            "peak_raised": self.peak_raised,
            "distance_to_stop_pct": (
                str(self.distance_to_stop_pct) if self.distance_to_stop_pct is not None else None
            ),
            "reason": self.reason,
        }


class DCATrailingStop:
    """
    Percentage trailing stop operating on a persisted TrailingStopSnapshot.

    The lifecycle:
    1. INACTIVE: waiting for the first take-profit fill
    2. ACTIVE: peak tracked, stop = peak * (1 - pct/100)
    3. TRIGGERED: price <= stop, the run must be liquidated
    """

    def __init__(self, trailing_stop_percentage: Decimal):
        if trailing_stop_percentage <= 0 or trailing_stop_percentage >= 100:
            raise ValueError("trailing_stop_percentage must be between 0 and 100")
        self._pct = trailing_stop_percentage

    @property
    def percentage(self) -> Decimal:
        return self._pct

    def activate(self, snapshot: TrailingStopSnapshot, current_price: Decimal) -> bool:
        """
        Arm the stop at the current price. Returns False if already armed.
        """
        if snapshot.active:
            return False
        snapshot.active = True
        snapshot.peak_price = current_price
        snapshot.activated_at = datetime.now(timezone.utc)
        return True

    def update_peak(self, snapshot: TrailingStopSnapshot, current_price: Decimal) -> bool:
        """
        Raise the peak to current_price if higher. Returns whether it moved.

        The peak is NEVER reduced.
        """
        if current_price > snapshot.peak_price:
            snapshot.peak_price = current_price
            return True
        return False

    def calculate_stop_price(self, peak_price: Decimal) -> Decimal:
        """peak * (1 - pct/100)"""
        return peak_price * (1 - self._pct / 100)

    def evaluate(
        self, snapshot: TrailingStopSnapshot, current_price: Decimal
    ) -> TrailingStopResult:
        """
        Ratchet the peak and decide whether to exit.

        Mutates snapshot.peak_price when the price makes a new high; the
        caller persists the snapshot when peak_raised is set.
        """
        if not snapshot.active:
            return TrailingStopResult(
                state=TrailingStopState.INACTIVE,
                should_exit=False,
                reason="Waiting for first take-profit fill",
            )

        peak_raised = self.update_peak(snapshot, current_price)
        stop_price = self.calculate_stop_price(snapshot.peak_price)

        if current_price <= stop_price:
            return TrailingStopResult(
                state=TrailingStopState.TRIGGERED,
                should_exit=True,
                peak_price=snapshot.peak_price,
                stop_price=stop_price,
                peak_raised=peak_raised,
                distance_to_stop_pct=Decimal("0"),
                reason=(
                    f"Trailing stop triggered: price {current_price} "
                    f"<= stop {stop_price} (peak: {snapshot.peak_price})"
                ),
            )

        distance_to_stop = ((current_price - stop_price) / current_price) * 100

        return TrailingStopResult(
            state=TrailingStopState.ACTIVE,
            should_exit=False,
            peak_price=snapshot.peak_price,
            stop_price=stop_price,
            peak_raised=peak_raised,
            distance_to_stop_pct=distance_to_stop,
            reason=f"Trailing active: stop={stop_price}, distance={distance_to_stop:.2f}%",
        )
