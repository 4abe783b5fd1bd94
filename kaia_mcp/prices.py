"""
KiloLend price API client.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

# API symbol -> standard symbol
API_SYMBOL_MAP = {
    "STAKED_KAIA": "stKAIA",
    "MARBLEX": "MBX",
}

# API symbol -> internal market symbol, for lending valuations
MARKET_SYMBOL_MAP = {
    "KAIA": "KAIA",
    "BORA": "BORA",
    "MARBLEX": "MBX",
    "STAKED_KAIA": "STAKED_KAIA",
    "USDT": "USDT",
    "SIX": "SIX",
}

# Used when the API is unreachable or omits a market
FALLBACK_PRICES = {
    "KAIA": 0.105,
    "USDT": 1.0,
    "SIX": 0.1,
    "BORA": 0.067,
    "MBX": 0.104,
    "STAKED_KAIA": 0.112,
}


class PriceAPIError(Exception):
    """The price API answered with an error or malformed payload."""


class PriceClient:
    """Fetches token prices from the KiloLend price endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, price_url: str, timeout: float = 10.0):
        self.http_client = http_client
        self.price_url = price_url
        self.timeout = timeout

    async def _fetch(self) -> List[Dict[str, Any]]:
        response = await self.http_client.get(self.price_url, timeout=self.timeout)
        if response.status_code != 200:
            raise PriceAPIError(f"Price API returned status {response.status_code}")
        payload = response.json()
        if not payload.get("success") or not isinstance(payload.get("data"), list):
            raise PriceAPIError("API returned unsuccessful response")
        return payload["data"]

    async def get_all_prices(self) -> Dict[str, Any]:
        """All prices with API symbols mapped to standard symbols."""
        data = await self._fetch()
        prices = [{**item, "symbol": API_SYMBOL_MAP.get(item.get("symbol"), item.get("symbol"))} for item in data]
        return {"prices": prices, "count": len(prices)}

    async def get_token_prices(self, symbols: List[str]) -> Dict[str, Any]:
        """Prices filtered to the requested standard symbols."""
        wanted = {s.strip() for s in symbols}
        all_prices = await self.get_all_prices()
        found = [p for p in all_prices["prices"] if p.get("symbol") in wanted]
        return {
            "prices": found,
            "count": len(found),
            "requestedSymbols": list(symbols),
            "foundSymbols": [p["symbol"] for p in found],
        }

    async def get_price_map(self) -> Dict[str, float]:
        """USD price per market symbol, falling back to static values on failure."""
        try:
            data = await self._fetch()
        except (httpx.HTTPError, PriceAPIError, ValueError) as e:
            logger.warning(f"Failed to fetch prices from KiloLend API: {e}, using fallback values")
            return dict(FALLBACK_PRICES)

        prices: Dict[str, float] = {}
        for item in data:
            symbol = MARKET_SYMBOL_MAP.get(item.get("symbol"))
            price = item.get("price")
            if symbol and price is not None:
                prices[symbol] = float(price)

        for symbol in ("USDT", "SIX"):
            prices.setdefault(symbol, FALLBACK_PRICES[symbol])
        return prices

    async def get_price(self, symbol: str) -> Optional[float]:
        return (await self.get_price_map()).get(symbol)
