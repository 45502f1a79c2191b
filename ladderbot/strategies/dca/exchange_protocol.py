"""LadderExchange: Protocol for the exchange operations the ladder engine uses.

Implemented by BinanceClient and by the fake exchange in the test suite.
"""

from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class LadderExchange(Protocol):
    """Abstraction for exchange operations used by the DCA ladder."""

    async def get_price(self, symbol: str) -> Decimal:
        ...

    async def list_open_orders(self, symbol: str) -> set[str]:
        ...

    async def place_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        quantity: Decimal,
        price: Decimal | None = None,
    ) -> str:
        ...

    async def cancel_all_orders(self, symbol: str) -> None:
        ...

    async def get_order_status(self, symbol: str, order_id: str) -> str:
        ...
