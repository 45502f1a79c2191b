"""
Binance-compatible Spot REST client.

Key features:
- HMAC SHA256 signed requests (timestamp + recvWindow in the query string)
- Explicit total request timeout; a hung call never blocks an invocation
- LOT_SIZE / PRICE_FILTER rounding from exchangeInfo (cached per client)
- Exchange error codes mapped onto the ladderbot exception hierarchy
- No retries: the next scheduled invocation is the retry mechanism
"""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import ROUND_DOWN, Decimal
from typing import Any, Literal
from urllib.parse import urlencode

import aiohttp

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
from ladderbot.utils.logger import get_logger

logger = get_logger(__name__)

OrderSide = Literal["BUY", "SELL"]
OrderType = Literal["LIMIT", "MARKET"]

DEFAULT_BASE_URL = "https://api.binance.us"

# Used when the exchange publishes no filter for the symbol
DEFAULT_STEP = Decimal("0.00000001")

# "Unknown order sent." - returned by DELETE openOrders when nothing is open
UNKNOWN_ORDER_CODE = -2011


class BinanceClient:
    """
    Binance Spot REST client covering the calls the DCA ladder needs.

    Operations:
    - get_price: last traded price for a symbol
    - list_open_orders: ids of the symbol's open orders
    - place_order: LIMIT (GTC) or MARKET order, returns the order id
    - cancel_all_orders: cancel every open order for a symbol
    - get_order_status: status string of a single order
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = 10.0,
        recv_window: int = 5000,
    ) -> None:
        """
        Initialize Binance client.

        Args:
            api_key: API key, sent in the X-MBX-APIKEY header
            api_secret: API secret used to sign requests
            base_url: REST endpoint (binance.us, binance.com or testnet)
            request_timeout: Total timeout in seconds for a single request
            recv_window: Milliseconds the exchange accepts a signed request for
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.recv_window = recv_window

        self._session: aiohttp.ClientSession | None = None

        # symbol -> {"step_size": Decimal, "tick_size": Decimal}
        self._symbol_filters: dict[str, dict[str, Decimal]] = {}

        # Statistics
        self._request_count = 0
        self._error_count = 0

        logger.info(
            "Initializing Binance client",
            base_url=self.base_url,
            request_timeout=request_timeout,
            recv_window=recv_window,
        )

    @property
    def is_initialized(self) -> bool:
        return self._session is not None

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        logger.debug("Binance client initialized")

    async def close(self) -> None:
        """Close HTTP session"""
        if self._session:
            await self._session.close()
            self._session = None
            logger.info(
                "Binance client closed",
                total_requests=self._request_count,
                total_errors=self._error_count,
            )

    async def __aenter__(self) -> "BinanceClient":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # Signing and transport
    # =========================================================================

    def _create_signature(self, query_string: str) -> str:
        """
        Create HMAC SHA256 signature over the canonical query string.

        Args:
            query_string: urlencoded parameters, including timestamp

        Returns:
            Hex signature
        """
        return hmac.new(
            self.api_secret.encode("utf-8"),
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _build_query(self, params: dict[str, Any], signed: bool) -> str:
        """Build the query string, appending timestamp and signature when signed."""
        params = dict(params)
        if signed:
            params["recvWindow"] = self.recv_window
            params["timestamp"] = int(time.time() * 1000)
        query_string = urlencode(params)
        if signed:
            query_string = f"{query_string}&signature={self._create_signature(query_string)}"
        return query_string

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        signed: bool = True,
    ) -> Any:
        """
        Make HTTP request to the exchange.

        Parameters always travel in the query string, which is also what the
        signature covers.

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint (e.g., '/api/v3/order')
            params: Request parameters
            signed: Whether request requires authentication

        Returns:
            Decoded JSON response

        Raises:
            ExchangeAPIError: On API errors (mapped subclass)
        """
        if not self._session:
            raise ExchangeAPIError("Client not initialized")

        self._request_count += 1
        query_string = self._build_query(params or {}, signed)
        url = f"{self.base_url}{endpoint}"
        if query_string:
            url = f"{url}?{query_string}"
        headers = {"X-MBX-APIKEY": self.api_key} if signed else {}

        logger.debug("binance_api_request", method=method, endpoint=endpoint, signed=signed)

        try:
            async with self._session.request(method, url, headers=headers) as response:
                status = response.status
                body = await response.text()
        except asyncio.TimeoutError as e:
            self._error_count += 1
            logger.error("Request timed out", endpoint=endpoint, timeout=self.request_timeout)
            raise NetworkError(f"Request to {endpoint} timed out") from e
        except aiohttp.ClientError as e:
            self._error_count += 1
            logger.error("Network error", endpoint=endpoint, error=str(e))
            raise NetworkError(f"Network error: {e}") from e

        try:
            data = json.loads(body)
            decoded = True
        except ValueError:
            # Gateways and load balancers answer errors with HTML pages
            data = None
            decoded = False

        if status >= 400:
            self._error_count += 1
            code = data.get("code") if isinstance(data, dict) else None
            if isinstance(data, dict):
                msg = data.get("msg", "Unknown error")
            else:
                msg = f"HTTP {status}: {body[:200]}"
            logger.error(
                "Binance API error",
                endpoint=endpoint,
                http_status=status,
                code=code,
                msg=msg,
            )
            raise self._map_error(status, code, msg)

        if not decoded:
            self._error_count += 1
            logger.error("Response is not JSON", endpoint=endpoint, http_status=status)
            raise ExchangeAPIError(f"Invalid JSON response from {endpoint}: {body[:200]}")

        return data

    def _map_error(self, http_status: int, code: int | None, msg: str) -> ExchangeAPIError:
        """Map HTTP status and Binance error codes to custom exceptions"""
        text = f"Binance error {code}: {msg}"

        if http_status in (418, 429) or code == -1003:
            return RateLimitError(text, code)
        if code in (-1021, -1022, -2014, -2015):
            return AuthenticationError(text, code)
        if code == -2010:
            if "insufficient balance" in msg.lower():
                return InsufficientFundsError(text, code)
            return OrderError(text, code)
        if code in (-2011, -2013):
            return OrderError(text, code)
        if code is not None and (code == -1013 or -1130 <= code <= -1100):
            return InvalidOrderError(text, code)
        if http_status >= 500:
            return ExchangeNotAvailableError(text, code)
        return ExchangeAPIError(text, code)

    # =========================================================================
    # Symbol filters
    # =========================================================================

    async def fetch_symbol_filters(self, symbol: str) -> dict[str, Decimal]:
        """
        Fetch quantity step and price tick for a symbol.

        Returns:
            {"step_size": Decimal, "tick_size": Decimal}
        """
        if symbol in self._symbol_filters:
            return self._symbol_filters[symbol]

        data = await self._request(
            "GET", "/api/v3/exchangeInfo", {"symbol": symbol}, signed=False
        )

        filters = {"step_size": DEFAULT_STEP, "tick_size": DEFAULT_STEP}
        for info in data.get("symbols", []):
            if info.get("symbol") != symbol:
                continue
            for f in info.get("filters", []):
                if f.get("filterType") == "LOT_SIZE" and Decimal(f.get("stepSize", "0")) > 0:
                    filters["step_size"] = Decimal(f["stepSize"])
                elif f.get("filterType") == "PRICE_FILTER" and Decimal(f.get("tickSize", "0")) > 0:
                    filters["tick_size"] = Decimal(f["tickSize"])

        self._symbol_filters[symbol] = filters
        logger.debug(
            "Fetched symbol filters",
            symbol=symbol,
            step_size=str(filters["step_size"]),
            tick_size=str(filters["tick_size"]),
        )
        return filters

    @staticmethod
    def _round_to_step(value: Decimal, step: Decimal, rounding: str = ROUND_DOWN) -> str:
        """Round value to a multiple of step and render it without exponent."""
        rounded = (value / step).to_integral_value(rounding=rounding) * step
        exponent = step.normalize().as_tuple().exponent
        if exponent < 0:
            return format(rounded.quantize(Decimal(1).scaleb(exponent)), "f")
        return format(rounded.normalize(), "f")

    # =========================================================================
    # Market data
    # =========================================================================

    async def get_price(self, symbol: str) -> Decimal:
        """Fetch the last traded price for a symbol."""
        data = await self._request(
            "GET", "/api/v3/ticker/price", {"symbol": symbol}, signed=False
        )
        price = Decimal(str(data["price"]))
        logger.debug("Fetched price", symbol=symbol, price=str(price))
        return price

    # =========================================================================
    # Orders
    # =========================================================================

    async def list_open_orders(self, symbol: str) -> set[str]:
        """
        Fetch the ids of all open orders for a symbol.

        Ids are normalized to strings; the exchange returns integers.
        """
        data = await self._request("GET", "/api/v3/openOrders", {"symbol": symbol})
        order_ids = {str(order["orderId"]) for order in data}
        logger.debug("Fetched open orders", symbol=symbol, count=len(order_ids))
        return order_ids

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: Decimal,
        price: Decimal | None = None,
    ) -> str:
        """
        Place a LIMIT (GTC) or MARKET order.

        Args:
            symbol: Trading pair (e.g., 'SOLUSDT')
            side: 'BUY' or 'SELL'
            order_type: 'LIMIT' or 'MARKET'
            quantity: Order quantity in base currency
            price: Limit price (required for LIMIT)

        Returns:
            Exchange order id as a string
        """
        if order_type == "LIMIT" and price is None:
            raise ValueError("Price required for limit orders")
        if order_type not in ("LIMIT", "MARKET"):
            raise ValueError(f"Unknown order type: {order_type}")

        filters = await self.fetch_symbol_filters(symbol)
        qty_str = self._round_to_step(quantity, filters["step_size"])

        params: dict[str, Any] = {
            "symbol": symbol,
            "side": side,
            "type": order_type,
            "quantity": qty_str,
        }
        if order_type == "LIMIT":
            params["price"] = self._round_to_step(price, filters["tick_size"])
            params["timeInForce"] = "GTC"

        data = await self._request("POST", "/api/v3/order", params)
        order_id = str(data["orderId"])

        logger.info(
            "Placed order",
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=qty_str,
            price=params.get("price", "market"),
            order_id=order_id,
        )
        return order_id

    async def cancel_all_orders(self, symbol: str) -> None:
        """Cancel all open orders for a symbol. Nothing open is not an error."""
        try:
            await self._request("DELETE", "/api/v3/openOrders", {"symbol": symbol})
        except OrderError as e:
            if e.code != UNKNOWN_ORDER_CODE:
                raise
            logger.info("No open orders to cancel", symbol=symbol)
            return
        logger.info("All orders cancelled", symbol=symbol)

    async def get_order_status(self, symbol: str, order_id: str) -> str:
        """Fetch the status of one order (NEW, FILLED, CANCELED, ...)."""
        data = await self._request(
            "GET", "/api/v3/order", {"symbol": symbol, "orderId": order_id}
        )
        return str(data["status"])

    def get_statistics(self) -> dict[str, Any]:
        """Get client statistics"""
        return {
            "exchange": "binance",
            "base_url": self.base_url,
            "initialized": self.is_initialized,
            "total_requests": self._request_count,
            "total_errors": self._error_count,
            "error_rate": (
                self._error_count / self._request_count if self._request_count > 0 else 0
            ),
        }
