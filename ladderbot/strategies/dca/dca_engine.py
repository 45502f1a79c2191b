"""
DCALadderEngine - one step of the DCA ladder state machine per invocation.

States: IDLE -> ACTIVE -> STOPPED.

Within ACTIVE, each invocation runs in strict order:
1. Place every missing limit buy (saved after each placement)
2. Snapshot the open-order ids once
3. Buys no longer open -> filled: place the level's take-profit sell
4. Sells no longer open -> filled: mark the level complete
5. First sell fill arms the trailing stop
6. Trailing stop ratchets its peak; on trigger cancel everything,
   market-sell the remainder and stop

A liquidation interrupted after its cancel is resumed on the next
invocation before any fill reconciliation.

Every mutation is saved before the next exchange call, so a crash between
steps never loses an order id that the exchange already accepted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ladderbot.config.schemas import FillCheckMode, StrategyConfig
from ladderbot.core.exceptions import ConfigurationError, FillAnomalyError
from ladderbot.core.models import LadderLevel, RunState, RunStatus, TrailingStopSnapshot
from ladderbot.core.state_store import StateStore
from ladderbot.strategies.dca.dca_trailing_stop import DCATrailingStop, TrailingStopResult
from ladderbot.strategies.dca.exchange_protocol import LadderExchange
from ladderbot.utils.logger import get_logger

logger = get_logger(__name__)

# Order statuses that mean "left the book but may still fill / is filling"
PENDING_STATUSES = frozenset({"NEW", "PARTIALLY_FILLED", "PENDING_CANCEL", "PENDING_NEW"})
FILLED_STATUS = "FILLED"

STATUS_MESSAGES = {
    RunStatus.IDLE: "Waiting for trigger price.",
    RunStatus.ACTIVE: "Run completed.",
    RunStatus.STOPPED: "Run is stopped.",
}


@dataclass
class PlacedOrder:
    """An order placed during one invocation."""

    side: str
    order_type: str
    quantity: Decimal
    order_id: str
    price: Decimal | None = None
    level: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "side": self.side,
            "order_type": self.order_type,
            "quantity": str(self.quantity),
            "price": str(self.price) if self.price is not None else None,
            "order_id": self.order_id,
            "level": self.level,
        }


@dataclass
class StepResult:
    """Outcome of one invocation."""

    status: RunStatus
    current_price: Decimal
    message: str = ""
    activated: bool = False
    liquidated: bool = False
    orders_placed: list[PlacedOrder] = field(default_factory=list)
    buy_fills: list[int] = field(default_factory=list)
    sell_fills: list[int] = field(default_factory=list)
    trailing_stop: TrailingStopResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "current_price": str(self.current_price),
            "message": self.message,
            "activated": self.activated,
            "liquidated": self.liquidated,
            "orders_placed": [o.to_dict() for o in self.orders_placed],
            "buy_fills": self.buy_fills,
            "sell_fills": self.sell_fills,
            "trailing_stop": self.trailing_stop.to_dict() if self.trailing_stop else None,
        }


def build_levels(config: StrategyConfig) -> list[LadderLevel]:
    """
    Compute the ladder: level i buys at trigger * (1 - drop/100)^i.

    Prices are strictly decreasing; each level spends base_amount of quote.
    """
    factor = 1 - config.drop_percentage / 100
    levels = []
    for i in range(config.num_levels):
        buy_price = config.trigger_price * factor**i
        levels.append(
            LadderLevel(
                level=i + 1,
                buy_price=buy_price,
                quantity=config.base_amount / buy_price,
            )
        )
    return levels


class DCALadderEngine:
    """
    DCA ladder with per-level take-profit and a global trailing stop.

    The engine owns the RunState; the StateStore is only the load/save
    boundary and the exchange only reports prices and order presence.
    """

    def __init__(
        self,
        config: StrategyConfig,
        exchange: LadderExchange,
        store: StateStore,
    ) -> None:
        self.config = config
        self._exchange = exchange
        self._store = store
        self._trailing = DCATrailingStop(config.trailing_stop_percentage)

    @property
    def symbol(self) -> str:
        return self.config.symbol

    # -----------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------

    async def run_once(self) -> StepResult:
        """
        load state -> fetch price -> advance one step -> save.
        """
        state = self._store.load()
        self._check_symbol(state)
        logger.info("Current state", status=state.status.value)

        current_price = await self._exchange.get_price(self.symbol)
        logger.info("Current price", symbol=self.symbol, price=str(current_price))

        result = await self.advance(state, current_price)
        if not result.liquidated:
            self._store.save(state)
        return result

    async def advance(self, state: RunState, current_price: Decimal) -> StepResult:
        """Advance the state machine by one invocation at current_price."""
        result = StepResult(status=state.status, current_price=current_price)

        if self._can_activate(state):
            if current_price <= self.config.trigger_price:
                self._activate(state)
                result.activated = True
            else:
                logger.info(
                    "Waiting for activation",
                    price=str(current_price),
                    trigger_price=str(self.config.trigger_price),
                )
        elif state.status == RunStatus.STOPPED:
            logger.info("Run is stopped, nothing to do", cycles_completed=state.cycles_completed)

        if state.status == RunStatus.ACTIVE and state.liquidation_pending:
            logger.warning(
                "Resuming interrupted liquidation",
                quantity=str(state.total_quantity_held),
                price=str(current_price),
            )
            await self._liquidate(state, None, result)
            return result

        if state.status == RunStatus.ACTIVE:
            await self._place_missing_buys(state, result)

            open_ids = await self._exchange.list_open_orders(self.symbol)

            new_sells = await self._reconcile_buy_fills(state, open_ids, result)
            sold = await self._reconcile_sell_fills(state, open_ids, new_sells, result)

            if sold and self._trailing.activate(state.trailing_stop, current_price):
                logger.info(
                    "First take-profit filled, trailing stop armed",
                    peak_price=str(current_price),
                    trailing_stop_percentage=str(self.config.trailing_stop_percentage),
                )
                self._store.save(state)

            ts_result = self._trailing.evaluate(state.trailing_stop, current_price)
            result.trailing_stop = ts_result
            if ts_result.peak_raised:
                logger.info("New trailing stop peak", peak_price=str(ts_result.peak_price))
                self._store.save(state)

            if ts_result.should_exit:
                await self._liquidate(state, ts_result, result)
                return result

        result.status = state.status
        result.message = STATUS_MESSAGES[state.status]
        logger.info("Invocation finished", **state.summary())
        return result

    # -----------------------------------------------------------------
    # Activation
    # -----------------------------------------------------------------

    def _can_activate(self, state: RunState) -> bool:
        if state.status == RunStatus.IDLE:
            return True
        return state.status == RunStatus.STOPPED and self.config.rearm_after_stop

    def _activate(self, state: RunState) -> None:
        state.status = RunStatus.ACTIVE
        state.symbol = self.symbol
        state.levels = build_levels(self.config)
        state.trailing_stop = TrailingStopSnapshot()
        state.total_quantity_held = Decimal("0")
        state.activated_at = datetime.now(timezone.utc)
        state.liquidation_pending = False
        state.stopped_at = None
        self._store.save(state)

        logger.info(
            "Trigger price reached, ladder activated",
            trigger_price=str(self.config.trigger_price),
            num_levels=len(state.levels),
            buy_prices=[str(lvl.buy_price) for lvl in state.levels],
        )

    def _check_symbol(self, state: RunState) -> None:
        if state.status != RunStatus.IDLE and state.symbol and state.symbol != self.symbol:
            raise ConfigurationError(
                f"State file tracks {state.symbol} but configuration trades {self.symbol}"
            )

    # -----------------------------------------------------------------
    # Order reconciliation
    # -----------------------------------------------------------------

    async def _place_missing_buys(self, state: RunState, result: StepResult) -> None:
        for level in state.levels:
            if level.buy_order_id is not None:
                continue
            order_id = await self._exchange.place_order(
                self.symbol, "BUY", "LIMIT", level.quantity, level.buy_price
            )
            level.buy_order_id = order_id
            self._store.save(state)

            result.orders_placed.append(
                PlacedOrder("BUY", "LIMIT", level.quantity, order_id, level.buy_price, level.level)
            )
            logger.info(
                "Buy order placed",
                level=level.level,
                price=str(level.buy_price),
                quantity=str(level.quantity),
                order_id=order_id,
            )

    async def _reconcile_buy_fills(
        self, state: RunState, open_ids: set[str], result: StepResult
    ) -> set[str]:
        """Place take-profits for filled buys. Returns the new sell order ids."""
        new_sells: set[str] = set()
        for level in state.levels:
            if not level.awaiting_buy_fill:
                continue
            if not await self._is_filled(level.buy_order_id, open_ids):
                continue

            logger.info("Buy filled", level=level.level, price=str(level.buy_price))
            state.total_quantity_held += level.quantity

            sell_price = level.buy_price * (1 + self.config.take_profit_percentage / 100)
            order_id = await self._exchange.place_order(
                self.symbol, "SELL", "LIMIT", level.quantity, sell_price
            )
            level.sell_order_id = order_id
            self._store.save(state)

            new_sells.add(order_id)
            result.buy_fills.append(level.level)
            result.orders_placed.append(
                PlacedOrder("SELL", "LIMIT", level.quantity, order_id, sell_price, level.level)
            )
            logger.info(
                "Take-profit placed",
                level=level.level,
                price=str(sell_price),
                quantity=str(level.quantity),
                order_id=order_id,
            )
        return new_sells

    async def _reconcile_sell_fills(
        self,
        state: RunState,
        open_ids: set[str],
        new_sells: set[str],
        result: StepResult,
    ) -> bool:
        """
        Mark levels whose take-profit filled. Returns whether any did.

        Sells placed in this invocation post-date the open-order snapshot,
        so their absence from it says nothing and they are skipped.
        """
        sold = False
        for level in state.levels:
            if not level.awaiting_sell_fill or level.sell_order_id in new_sells:
                continue
            if not await self._is_filled(level.sell_order_id, open_ids):
                continue

            level.is_complete = True
            state.total_quantity_held -= level.quantity
            self._store.save(state)

            sold = True
            result.sell_fills.append(level.level)
            logger.info(
                "Take-profit filled",
                level=level.level,
                quantity=str(level.quantity),
                remaining_quantity=str(state.total_quantity_held),
            )
        return sold

    async def _is_filled(self, order_id: str, open_ids: set[str]) -> bool:
        if order_id in open_ids:
            return False
        if self.config.fill_check == FillCheckMode.ABSENCE:
            return True

        status = await self._exchange.get_order_status(self.symbol, order_id)
        if status == FILLED_STATUS:
            return True
        if status in PENDING_STATUSES:
            logger.info("Order not open but not filled yet", order_id=order_id, status=status)
            return False

        logger.error("Tracked order left the book unfilled", order_id=order_id, status=status)
        raise FillAnomalyError(
            f"Order {order_id} is {status}, not FILLED", order_id=order_id, order_status=status
        )

    # -----------------------------------------------------------------
    # Liquidation
    # -----------------------------------------------------------------

    async def _liquidate(
        self, state: RunState, ts_result: TrailingStopResult | None, result: StepResult
    ) -> None:
        """
        Cancel everything, market-sell what is held and stop.

        The pending marker is saved before the cancel: once orders are
        cancelled their absence from the book no longer means filled, so an
        interrupted liquidation must be resumed rather than reconciled.
        """
        if ts_result is not None:
            logger.warning(
                "Trailing stop triggered, liquidating",
                price=str(result.current_price),
                peak_price=str(ts_result.peak_price),
                stop_price=str(ts_result.stop_price),
                quantity=str(state.total_quantity_held),
            )

        if not state.liquidation_pending:
            state.liquidation_pending = True
            self._store.save(state)

        await self._exchange.cancel_all_orders(self.symbol)

        if state.total_quantity_held > 0:
            order_id = await self._exchange.place_order(
                self.symbol, "SELL", "MARKET", state.total_quantity_held
            )
            result.orders_placed.append(
                PlacedOrder("SELL", "MARKET", state.total_quantity_held, order_id)
            )

        state.status = RunStatus.STOPPED
        state.liquidation_pending = False
        state.stopped_at = datetime.now(timezone.utc)
        state.cycles_completed += 1
        self._store.save(state)

        result.status = state.status
        result.liquidated = True
        result.message = "Cycle completed by trailing stop."
        logger.info("Run stopped", cycles_completed=state.cycles_completed)
