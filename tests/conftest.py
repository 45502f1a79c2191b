"""Pytest configuration and shared fixtures"""

from decimal import Decimal
from pathlib import Path

import pytest

from ladderbot.config.schemas import StrategyConfig
from ladderbot.core.state_store import StateStore


class FakeExchange:
    """
    In-memory exchange implementing LadderExchange.

    Orders stay open until a test fills or cancels them; every call is
    recorded so tests can assert on exact order placement.
    """

    def __init__(self, price: Decimal = Decimal("100")) -> None:
        self.price = price
        self.open_orders: set[str] = set()
        self.order_statuses: dict[str, str] = {}
        self.placed: list[dict] = []
        self.cancel_all_calls = 0
        self.status_queries: list[str] = []
        self._next_id = 1000

    async def get_price(self, symbol: str) -> Decimal:
        return self.price

    async def list_open_orders(self, symbol: str) -> set[str]:
        return set(self.open_orders)

    async def place_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        quantity: Decimal,
        price: Decimal | None = None,
    ) -> str:
        self._next_id += 1
        order_id = str(self._next_id)
        self.placed.append(
            {
                "id": order_id,
                "symbol": symbol,
                "side": side,
                "type": order_type,
                "quantity": quantity,
                "price": price,
            }
        )
        if order_type == "LIMIT":
            self.open_orders.add(order_id)
            self.order_statuses[order_id] = "NEW"
        else:
            self.order_statuses[order_id] = "FILLED"
        return order_id

    async def cancel_all_orders(self, symbol: str) -> None:
        self.cancel_all_calls += 1
        for order_id in self.open_orders:
            self.order_statuses[order_id] = "CANCELED"
        self.open_orders.clear()

    async def get_order_status(self, symbol: str, order_id: str) -> str:
        self.status_queries.append(order_id)
        return self.order_statuses[order_id]

    # Test helpers

    def fill(self, order_id: str) -> None:
        self.open_orders.discard(order_id)
        self.order_statuses[order_id] = "FILLED"

    def orders(self, side: str | None = None, order_type: str | None = None) -> list[dict]:
        return [
            o
            for o in self.placed
            if (side is None or o["side"] == side)
            and (order_type is None or o["type"] == order_type)
        ]


@pytest.fixture
def fake_exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "state.json"


@pytest.fixture
def store(state_path: Path) -> StateStore:
    return StateStore(state_path)


@pytest.fixture
def strategy_config() -> StrategyConfig:
    """Two-level ladder used by the worked scenarios."""
    return StrategyConfig(
        symbol="SOLUSDT",
        trigger_price=Decimal("100"),
        num_levels=2,
        base_amount=Decimal("20"),
        drop_percentage=Decimal("1"),
        take_profit_percentage=Decimal("0.8"),
        trailing_stop_percentage=Decimal("2"),
    )


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for test configs"""
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def example_config_yaml(test_config_dir: Path, tmp_path: Path) -> Path:
    """Create an example YAML config file"""
    config_file = test_config_dir / "test_config.yaml"
    config_file.write_text(
        f"""
strategy:
  symbol: SOLUSDT
  trigger_price: "100.0"
  num_levels: 2
  base_amount: "20"
  drop_percentage: "1.0"
  take_profit_percentage: "0.8"
  trailing_stop_percentage: "2.0"

exchange:
  base_url: https://testnet.binance.vision
  request_timeout: 5

state_file: {tmp_path / "state.json"}
log_level: INFO
log_to_console: false
"""
    )
    return config_file
