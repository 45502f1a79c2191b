"""
Persisted run state for the DCA ladder.

The whole mutable state of a run is one document. Decimal fields are
serialized as strings so no precision is lost between invocations.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATE_SCHEMA_VERSION = 1


class RunStatus(str, Enum):
    """Lifecycle of a run"""

    IDLE = "IDLE"  # waiting for the trigger price
    ACTIVE = "ACTIVE"  # ladder placed, reconciling fills
    STOPPED = "STOPPED"  # trailing stop liquidated the position


class LadderLevel(BaseModel):
    """One buy level of the ladder and its take-profit sell"""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    level: int = Field(..., ge=1)
    buy_price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    buy_order_id: str | None = None
    sell_order_id: str | None = None
    is_complete: bool = False

    @property
    def awaiting_buy_fill(self) -> bool:
        return self.buy_order_id is not None and self.sell_order_id is None

    @property
    def awaiting_sell_fill(self) -> bool:
        return self.sell_order_id is not None and not self.is_complete


class TrailingStopSnapshot(BaseModel):
    """
    Persistent trailing stop state.

    peak_price never decreases once active, and active never goes back to
    False within a run.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    active: bool = False
    peak_price: Decimal = Field(default=Decimal("0"), ge=0)
    activated_at: datetime | None = None


class RunState(BaseModel):
    """The persisted document"""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    schema_version: int = STATE_SCHEMA_VERSION
    symbol: str | None = None
    status: RunStatus = RunStatus.IDLE
    levels: list[LadderLevel] = Field(default_factory=list)
    trailing_stop: TrailingStopSnapshot = Field(default_factory=TrailingStopSnapshot)
    total_quantity_held: Decimal = Decimal("0")
    activated_at: datetime | None = None
    stopped_at: datetime | None = None
    cycles_completed: int = Field(default=0, ge=0)
    # Set before the liquidation cancel; cleared once the position is sold
    liquidation_pending: bool = False

    @field_validator("schema_version")
    @classmethod
    def check_schema_version(cls, v: int) -> int:
        if v != STATE_SCHEMA_VERSION:
            raise ValueError(
                f"unsupported state schema version {v} (expected {STATE_SCHEMA_VERSION})"
            )
        return v

    @field_validator("levels")
    @classmethod
    def check_level_indexes(cls, v: list[LadderLevel]) -> list[LadderLevel]:
        indexes = [lvl.level for lvl in v]
        if indexes != list(range(1, len(v) + 1)):
            raise ValueError(f"level indexes must be 1..n in order, got {indexes}")
        return v

    @classmethod
    def idle(cls) -> "RunState":
        """Fresh state for a run that has never been activated."""
        return cls()

    def summary(self) -> dict:
        """Compact view for logs and the status command."""
        return {
            "symbol": self.symbol,
            "status": self.status.value,
            "levels": len(self.levels),
            "buys_placed": sum(1 for lvl in self.levels if lvl.buy_order_id),
            "buys_filled": sum(1 for lvl in self.levels if lvl.sell_order_id),
            "sells_filled": sum(1 for lvl in self.levels if lvl.is_complete),
            "total_quantity_held": str(self.total_quantity_held),
            "trailing_stop_active": self.trailing_stop.active,
            "peak_price": str(self.trailing_stop.peak_price),
            "cycles_completed": self.cycles_completed,
            "liquidation_pending": self.liquidation_pending,
        }
