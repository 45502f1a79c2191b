"""
Tests for BinanceClient - Spot REST client with mock HTTP responses.
"""

import asyncio
import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs

import aiohttp
import pytest

from ladderbot.api.binance_client import BinanceClient
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

FILTERS = {"step_size": Decimal("0.001"), "tick_size": Decimal("0.01")}


def fake_session(status: int = 200, payload=None, body: str | None = None) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=json.dumps(payload) if body is None else body)
    session = MagicMock()
    session.request.return_value.__aenter__.return_value = response
    return session


class TestBinanceClientInit:
    def test_defaults(self):
        client = BinanceClient(api_key="k", api_secret="s")
        assert client.base_url == "https://api.binance.us"
        assert client.request_timeout == 10.0
        assert client.recv_window == 5000
        assert client.is_initialized is False

    def test_trailing_slash_stripped(self):
        client = BinanceClient(api_key="k", api_secret="s", base_url="https://testnet.binance.vision/")
        assert client.base_url == "https://testnet.binance.vision"

    def test_initial_stats(self):
        client = BinanceClient(api_key="k", api_secret="s")
        assert client._request_count == 0
        assert client._error_count == 0


class TestSignature:
    def test_create_signature(self):
        client = BinanceClient(api_key="test_api_key", api_secret="test_secret")
        query = "symbol=SOLUSDT&side=BUY&timestamp=1700000000000"

        expected = hmac.new(b"test_secret", query.encode("utf-8"), hashlib.sha256).hexdigest()
        assert client._create_signature(query) == expected

    def test_signed_query(self):
        client = BinanceClient(api_key="k", api_secret="s", recv_window=3000)
        query = client._build_query({"symbol": "SOLUSDT"}, signed=True)

        payload, _, signature = query.partition("&signature=")
        parsed = parse_qs(payload)
        assert parsed["symbol"] == ["SOLUSDT"]
        assert parsed["recvWindow"] == ["3000"]
        assert "timestamp" in parsed
        assert signature == client._create_signature(payload)

    def test_unsigned_query(self):
        client = BinanceClient(api_key="k", api_secret="s")
        assert client._build_query({"symbol": "SOLUSDT"}, signed=False) == "symbol=SOLUSDT"


class TestErrorMapping:
    @pytest.mark.parametrize(
        "http_status,code,msg,expected",
        [
            (429, None, "Too many requests", RateLimitError),
            (418, None, "IP banned", RateLimitError),
            (400, -1003, "Too much request weight", RateLimitError),
            (400, -1021, "Timestamp outside recvWindow", AuthenticationError),
            (400, -1022, "Signature is not valid", AuthenticationError),
            (401, -2015, "Invalid API-key", AuthenticationError),
            (400, -2010, "Account has insufficient balance", InsufficientFundsError),
            (400, -2010, "Market is closed", OrderError),
            (400, -2011, "Unknown order sent.", OrderError),
            (400, -1013, "Filter failure: LOT_SIZE", InvalidOrderError),
            (400, -1111, "Precision is over the maximum", InvalidOrderError),
            (503, None, "Service unavailable", ExchangeNotAvailableError),
            (400, -9999, "Unknown", ExchangeAPIError),
        ],
    )
    def test_mapping(self, http_status, code, msg, expected):
        client = BinanceClient(api_key="k", api_secret="s")
        err = client._map_error(http_status, code, msg)
        assert type(err) is expected
        assert err.code == code


class TestRoundToStep:
    @pytest.mark.parametrize(
        "value,step,expected",
        [
            ("0.123456", "0.001", "0.123"),
            ("0.2", "0.001", "0.200"),
            ("99.792", "0.01", "99.79"),
            ("5.7", "1.00000000", "5"),
            ("123", "10", "120"),
            ("0.202020202020", "0.00000001", "0.20202020"),
        ],
    )
    def test_round_down(self, value, step, expected):
        assert BinanceClient._round_to_step(Decimal(value), Decimal(step)) == expected


class TestGetStatistics:
    def test_initial_stats(self):
        client = BinanceClient(api_key="k", api_secret="s")
        stats = client.get_statistics()
        assert stats["exchange"] == "binance"
        assert stats["total_requests"] == 0
        assert stats["error_rate"] == 0

    def test_stats_after_requests(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._request_count = 10
        client._error_count = 2
        assert client.get_statistics()["error_rate"] == 0.2


class TestSessionLifecycle:
    async def test_initialize_creates_session(self):
        client = BinanceClient(api_key="k", api_secret="s")
        await client.initialize()
        assert client.is_initialized
        await client.close()

    async def test_context_manager_closes(self):
        async with BinanceClient(api_key="k", api_secret="s") as client:
            assert client.is_initialized
        assert client._session is None

    async def test_close_without_init(self):
        client = BinanceClient(api_key="k", api_secret="s")
        await client.close()
        assert client._session is None


class TestRequest:
    async def test_request_without_init(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with pytest.raises(ExchangeAPIError, match="not initialized"):
            await client._request("GET", "/api/v3/openOrders")

    async def test_signed_request_sends_key(self):
        client = BinanceClient(api_key="my-key", api_secret="s")
        client._session = fake_session(payload=[])

        await client._request("GET", "/api/v3/openOrders", {"symbol": "SOLUSDT"})

        method, url = client._session.request.call_args.args
        assert method == "GET"
        assert url.startswith("https://api.binance.us/api/v3/openOrders?symbol=SOLUSDT")
        assert "signature=" in url
        assert client._session.request.call_args.kwargs["headers"] == {"X-MBX-APIKEY": "my-key"}

    async def test_public_request_unsigned(self):
        client = BinanceClient(api_key="my-key", api_secret="s")
        client._session = fake_session(payload={"price": "100"})

        await client._request("GET", "/api/v3/ticker/price", {"symbol": "SOLUSDT"}, signed=False)

        _, url = client._session.request.call_args.args
        assert url == "https://api.binance.us/api/v3/ticker/price?symbol=SOLUSDT"
        assert client._session.request.call_args.kwargs["headers"] == {}

    async def test_error_response_mapped(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = fake_session(
            status=400, payload={"code": -2010, "msg": "Account has insufficient balance"}
        )

        with pytest.raises(InsufficientFundsError, match="-2010"):
            await client._request("POST", "/api/v3/order", {"symbol": "SOLUSDT"})
        assert client._error_count == 1

    async def test_html_gateway_error_is_unavailable(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = fake_session(status=502, body="<html>Bad Gateway</html>")

        with pytest.raises(ExchangeNotAvailableError, match="Bad Gateway") as exc_info:
            await client.get_price("SOLUSDT")
        assert exc_info.value.code is None
        assert client._error_count == 1

    async def test_html_client_error_is_exchange_error(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = fake_session(status=403, body="<html>Forbidden</html>")

        with pytest.raises(ExchangeAPIError, match="HTTP 403"):
            await client._request("GET", "/api/v3/openOrders")

    async def test_non_json_success_body(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = fake_session(status=200, body="<html>maintenance</html>")

        with pytest.raises(ExchangeAPIError, match="Invalid JSON") as exc_info:
            await client.get_price("SOLUSDT")
        assert type(exc_info.value) is ExchangeAPIError

    async def test_timeout_is_network_error(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = MagicMock()
        client._session.request.side_effect = asyncio.TimeoutError()

        with pytest.raises(NetworkError, match="timed out"):
            await client._request("GET", "/api/v3/openOrders")

    async def test_connection_error_is_network_error(self):
        client = BinanceClient(api_key="k", api_secret="s")
        client._session = MagicMock()
        client._session.request.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(NetworkError, match="refused"):
            await client._request("GET", "/api/v3/openOrders")


class TestSymbolFilters:
    async def test_fetch_symbol_filters(self):
        client = BinanceClient(api_key="k", api_secret="s")
        mock_response = {
            "symbols": [
                {
                    "symbol": "SOLUSDT",
                    "filters": [
                        {"filterType": "PRICE_FILTER", "tickSize": "0.01000000"},
                        {"filterType": "LOT_SIZE", "stepSize": "0.00100000"},
                    ],
                }
            ]
        }

        with patch.object(
            client, "_request", new_callable=AsyncMock, return_value=mock_response
        ) as mock_request:
            filters = await client.fetch_symbol_filters("SOLUSDT")
            await client.fetch_symbol_filters("SOLUSDT")

        assert filters == FILTERS
        mock_request.assert_awaited_once()

    async def test_missing_filters_use_default(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(client, "_request", new_callable=AsyncMock, return_value={"symbols": []}):
            filters = await client.fetch_symbol_filters("SOLUSDT")
        assert filters["step_size"] == Decimal("0.00000001")
        assert filters["tick_size"] == Decimal("0.00000001")


class TestMarketData:
    async def test_get_price(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(
            client,
            "_request",
            new_callable=AsyncMock,
            return_value={"symbol": "SOLUSDT", "price": "142.35000000"},
        ) as mock_request:
            price = await client.get_price("SOLUSDT")

        assert price == Decimal("142.35")
        mock_request.assert_awaited_once_with(
            "GET", "/api/v3/ticker/price", {"symbol": "SOLUSDT"}, signed=False
        )


class TestOrders:
    async def test_list_open_orders_normalizes_ids(self):
        client = BinanceClient(api_key="k", api_secret="s")
        mock_response = [{"orderId": 28, "symbol": "SOLUSDT"}, {"orderId": 31, "symbol": "SOLUSDT"}]

        with patch.object(client, "_request", new_callable=AsyncMock, return_value=mock_response):
            assert await client.list_open_orders("SOLUSDT") == {"28", "31"}

    async def test_place_limit_order(self):
        client = BinanceClient(api_key="k", api_secret="s")

        with patch.object(
            client, "fetch_symbol_filters", new_callable=AsyncMock, return_value=FILTERS
        ), patch.object(
            client, "_request", new_callable=AsyncMock, return_value={"orderId": 12345}
        ) as mock_request:
            order_id = await client.place_order(
                "SOLUSDT", "SELL", "LIMIT", Decimal("20") / Decimal("99"), Decimal("99.792")
            )

        assert order_id == "12345"
        mock_request.assert_awaited_once_with(
            "POST",
            "/api/v3/order",
            {
                "symbol": "SOLUSDT",
                "side": "SELL",
                "type": "LIMIT",
                "quantity": "0.202",
                "price": "99.79",
                "timeInForce": "GTC",
            },
        )

    async def test_place_market_order_has_no_time_in_force(self):
        client = BinanceClient(api_key="k", api_secret="s")

        with patch.object(
            client, "fetch_symbol_filters", new_callable=AsyncMock, return_value=FILTERS
        ), patch.object(
            client, "_request", new_callable=AsyncMock, return_value={"orderId": 7}
        ) as mock_request:
            await client.place_order("SOLUSDT", "SELL", "MARKET", Decimal("0.4"))

        params = mock_request.call_args.args[2]
        assert params == {"symbol": "SOLUSDT", "side": "SELL", "type": "MARKET", "quantity": "0.400"}

    async def test_limit_order_requires_price(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with pytest.raises(ValueError, match="Price required"):
            await client.place_order("SOLUSDT", "BUY", "LIMIT", Decimal("1"))

    async def test_unknown_order_type(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with pytest.raises(ValueError, match="Unknown order type"):
            await client.place_order("SOLUSDT", "BUY", "STOP_LOSS", Decimal("1"), Decimal("1"))

    async def test_cancel_all_orders(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(client, "_request", new_callable=AsyncMock, return_value=[]) as mock_request:
            await client.cancel_all_orders("SOLUSDT")
        mock_request.assert_awaited_once_with("DELETE", "/api/v3/openOrders", {"symbol": "SOLUSDT"})

    async def test_cancel_all_with_nothing_open(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(
            client,
            "_request",
            new_callable=AsyncMock,
            side_effect=OrderError("Binance error -2011: Unknown order sent.", -2011),
        ):
            await client.cancel_all_orders("SOLUSDT")

    async def test_cancel_all_other_order_error_propagates(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(
            client,
            "_request",
            new_callable=AsyncMock,
            side_effect=OrderError("Binance error -2013: Order does not exist.", -2013),
        ):
            with pytest.raises(OrderError):
                await client.cancel_all_orders("SOLUSDT")

    async def test_get_order_status(self):
        client = BinanceClient(api_key="k", api_secret="s")
        with patch.object(
            client,
            "_request",
            new_callable=AsyncMock,
            return_value={"orderId": 5, "status": "CANCELED"},
        ) as mock_request:
            status = await client.get_order_status("SOLUSDT", "5")

        assert status == "CANCELED"
        mock_request.assert_awaited_once_with(
            "GET", "/api/v3/order", {"symbol": "SOLUSDT", "orderId": "5"}
        )
