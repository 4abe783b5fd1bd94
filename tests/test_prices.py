"""Tests for the price API client against a mocked transport."""

import asyncio

import httpx
import pytest

from kaia_mcp.prices import FALLBACK_PRICES, PriceAPIError, PriceClient

PRICE_URL = "https://prices.example/prod/prices"

PAYLOAD = {
    "success": True,
    "data": [
        {"symbol": "KAIA", "price": 0.15, "percent_change_24h": 1.2},
        {"symbol": "STAKED_KAIA", "price": 0.16},
        {"symbol": "MARBLEX", "price": 0.2},
        {"symbol": "BORA", "price": 0.07},
    ],
}


def run_with(handler, fn):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            return await fn(PriceClient(http_client, PRICE_URL, timeout=1.0))
    return asyncio.run(go())


def ok(request):
    return httpx.Response(200, json=PAYLOAD)


class TestPriceClient:
    def test_all_prices_maps_symbols(self):
        result = run_with(ok, lambda c: c.get_all_prices())
        symbols = [p["symbol"] for p in result["prices"]]
        assert symbols == ["KAIA", "stKAIA", "MBX", "BORA"]
        assert result["count"] == 4

    def test_token_prices_filters(self):
        result = run_with(ok, lambda c: c.get_token_prices(["stKAIA", "MBX", "DOGE"]))
        assert result["foundSymbols"] == ["stKAIA", "MBX"]
        assert result["requestedSymbols"] == ["stKAIA", "MBX", "DOGE"]

    def test_price_map_uses_market_symbols(self):
        prices = run_with(ok, lambda c: c.get_price_map())
        assert prices["KAIA"] == 0.15
        assert prices["MBX"] == 0.2
        assert prices["STAKED_KAIA"] == 0.16
        # stablecoin and SIX defaults fill gaps
        assert prices["USDT"] == 1.0
        assert prices["SIX"] == FALLBACK_PRICES["SIX"]

    def test_unsuccessful_payload_raises(self):
        def handler(request):
            return httpx.Response(200, json={"success": False})
        with pytest.raises(PriceAPIError):
            run_with(handler, lambda c: c.get_all_prices())

    def test_price_map_falls_back_on_http_error(self):
        def handler(request):
            return httpx.Response(503)
        assert run_with(handler, lambda c: c.get_price_map()) == FALLBACK_PRICES

    def test_price_map_falls_back_when_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)
        assert run_with(handler, lambda c: c.get_price("KAIA")) == FALLBACK_PRICES["KAIA"]
