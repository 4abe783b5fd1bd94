"""
KiloLend (Compound-style) lending markets on Kaia.

Market reads are batched per cToken through multicall. Writes are single
cToken calls; supply and repay approve the cToken for ERC-20 markets first.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from web3 import Web3

from .abis import COMPTROLLER_ABI, CTOKEN_ABI
from .chain import ChainClient, ContractCall, TransactionSigner
from .config import BLOCKS_PER_YEAR, KILOLEND_COMPTROLLER, KILOLEND_CTOKENS, MAX_UINT256
from .errors import InvalidAmountError, KaiaMCPError, ReadOnlyModeError, UnsupportedMarketError
from .fixed_point import format_amount, format_units, parse_units
from .pool_reader import PoolStateReader
from .prices import PriceClient
from .swap import ensure_allowance
from .tokens import Token, token_by_symbol

logger = logging.getLogger(__name__)

MANTISSA = 10**18
MAX_APY_PERCENT = 1_000_000.0


def rate_to_apy(rate_per_block: int, blocks_per_year: int = BLOCKS_PER_YEAR) -> float:
    """Compound a per-block rate mantissa over a year, in percent, capped at MAX_APY_PERCENT."""
    try:
        apy = ((1 + rate_per_block / MANTISSA) ** blocks_per_year - 1) * 100
    except OverflowError:
        return MAX_APY_PERCENT
    return min(apy, MAX_APY_PERCENT)


def health_factor(collateral_usd: float, borrow_usd: float) -> float:
    """Collateral over borrows; 999 when nothing is borrowed."""
    if borrow_usd <= 0:
        return 999.0
    return collateral_usd / borrow_usd


@dataclass(frozen=True)
class MarketData:
    """Raw on-chain state of one cToken market."""
    symbol: str
    ctoken_address: str
    exchange_rate: int
    supply_rate_per_block: int
    borrow_rate_per_block: int
    total_supply: int
    total_borrows: int
    cash: int

    @property
    def underlying(self) -> Token:
        return Token[self.symbol]

    @property
    def total_underlying_supply(self) -> int:
        return self.total_supply * self.exchange_rate // MANTISSA

    @property
    def utilization(self) -> float:
        supplied = self.total_underlying_supply
        if supplied <= 0:
            return 0.0
        return self.total_borrows / supplied * 100

    def summary(self, price: float) -> Dict[str, Any]:
        decimals = self.underlying.decimals
        return {
            "symbol": f"c{self.symbol}",
            "underlyingSymbol": self.symbol,
            "cTokenAddress": self.ctoken_address,
            "underlyingAddress": self.underlying.address,
            "supplyApy": round(rate_to_apy(self.supply_rate_per_block), 2),
            "borrowApy": round(rate_to_apy(self.borrow_rate_per_block), 2),
            "totalSupply": format_amount(format_units(self.total_underlying_supply, decimals)),
            "totalBorrows": format_amount(format_units(self.total_borrows, decimals)),
            "cash": format_amount(format_units(self.cash, decimals)),
            "utilizationRate": round(self.utilization, 2),
            "exchangeRate": str(self.exchange_rate),
            "price": price,
            "isListed": True,
        }


class KiloLendClient:
    """Reads KiloLend markets and positions; supplies, borrows and repays."""

    def __init__(self, chain: ChainClient, signer: TransactionSigner, reader: PoolStateReader,
                 price_client: PriceClient,
                 comptroller: str = KILOLEND_COMPTROLLER,
                 ctokens: Optional[Dict[str, str]] = None):
        self.chain = chain
        self.signer = signer
        self.reader = reader
        self.price_client = price_client
        self.comptroller = comptroller
        self.ctokens = dict(KILOLEND_CTOKENS if ctokens is None else ctokens)

    def market_symbol(self, symbol: str) -> str:
        """Normalize a user symbol ('stkaia', 'MARBLEX') to a market key."""
        token = token_by_symbol(symbol)
        if token is None or token.name not in self.ctokens:
            raise UnsupportedMarketError(
                f"Market {symbol} not available. Supported: {', '.join(self.ctokens)}"
            )
        return token.name

    def market_for_ctoken(self, ctoken_address: str) -> Optional[str]:
        for symbol, address in self.ctokens.items():
            if address.lower() == ctoken_address.lower():
                return symbol
        return None

    def read_market(self, symbol: str) -> MarketData:
        """One multicall read of a market's rates and totals."""
        symbol = self.market_symbol(symbol)
        address = Web3.to_checksum_address(self.ctokens[symbol])
        results = self.chain.multicall([
            ContractCall(address, CTOKEN_ABI, name)
            for name in ("exchangeRateStored", "supplyRatePerBlock", "borrowRatePerBlock",
                         "totalSupply", "totalBorrows", "getCash")
        ])
        exchange_rate, supply_rate, borrow_rate, total_supply, total_borrows, cash = (int(r) for r in results)
        return MarketData(
            symbol=symbol,
            ctoken_address=address,
            exchange_rate=exchange_rate,
            supply_rate_per_block=supply_rate,
            borrow_rate_per_block=borrow_rate,
            total_supply=total_supply,
            total_borrows=total_borrows,
            cash=cash,
        )

    async def get_market(self, symbol: str) -> Dict[str, Any]:
        symbol = self.market_symbol(symbol)
        loop = asyncio.get_event_loop()
        market, prices = await asyncio.gather(
            loop.run_in_executor(None, self.read_market, symbol),
            self.price_client.get_price_map(),
        )
        return market.summary(prices.get(symbol, 0.0))

    async def get_all_markets(self) -> List[Dict[str, Any]]:
        """Summaries for every market; unreadable markets are skipped."""
        loop = asyncio.get_event_loop()
        prices = await self.price_client.get_price_map()
        symbols = list(self.ctokens)
        results = await asyncio.gather(
            *[loop.run_in_executor(None, self.read_market, s) for s in symbols],
            return_exceptions=True,
        )

        markets = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to load data for {symbol}: {result}")
                continue
            markets.append(result.summary(prices.get(symbol, 0.0)))
        return markets

    def _read_position(self, ctoken_address: str, account: str) -> Optional[Dict[str, Any]]:
        symbol = self.market_for_ctoken(ctoken_address)
        if symbol is None:
            logger.warning(f"Unknown cToken in account assets: {ctoken_address}")
            return None

        snapshot, ctoken_balance = self.chain.multicall([
            ContractCall(ctoken_address, CTOKEN_ABI, "getAccountSnapshot", (account,)),
            ContractCall(ctoken_address, CTOKEN_ABI, "balanceOf", (account,)),
        ])
        error, _, borrow_balance, exchange_rate = (int(v) for v in snapshot)
        if error != 0:
            logger.warning(f"Account snapshot error {error} for {symbol}")
            return None

        decimals = Token[symbol].decimals
        return {
            "cTokenAddress": Web3.to_checksum_address(ctoken_address),
            "symbol": symbol,
            "supplyBalance": format_units(int(ctoken_balance) * exchange_rate // MANTISSA, decimals),
            "borrowBalance": format_units(borrow_balance, decimals),
        }

    async def get_account_liquidity(self, account: Optional[str] = None) -> Dict[str, Any]:
        """Comptroller liquidity/shortfall plus per-market positions in USD."""
        account = account or self.signer.address
        if not account:
            raise KaiaMCPError("No address provided and wallet not initialized")
        account = Web3.to_checksum_address(account)
        loop = asyncio.get_event_loop()

        error, liquidity, shortfall = await loop.run_in_executor(
            None, self.chain.read_contract, self.comptroller, COMPTROLLER_ABI,
            "getAccountLiquidity", (account,),
        )
        if int(error) != 0:
            raise KaiaMCPError(f"Comptroller error: {error}")

        assets_in = await loop.run_in_executor(
            None, self.chain.read_contract, self.comptroller, COMPTROLLER_ABI, "getAssetsIn", (account,)
        )
        prices = await self.price_client.get_price_map()

        positions = []
        total_collateral_usd = 0.0
        total_borrow_usd = 0.0
        for ctoken_address in assets_in:
            try:
                position = await loop.run_in_executor(None, self._read_position, ctoken_address, account)
            except Exception as e:
                logger.error(f"Failed to get position for {ctoken_address}: {e}")
                continue
            if position is None:
                continue

            price = prices.get(position["symbol"], 0.0)
            supply_usd = float(position["supplyBalance"]) * price
            borrow_usd = float(position["borrowBalance"]) * price
            total_collateral_usd += supply_usd
            total_borrow_usd += borrow_usd
            positions.append({
                **position,
                "supplyBalance": format_amount(position["supplyBalance"]),
                "borrowBalance": format_amount(position["borrowBalance"]),
                "supplyValueUSD": supply_usd,
                "borrowValueUSD": borrow_usd,
            })

        return {
            "account": account,
            "liquidity": format_amount(format_units(int(liquidity), 18)),
            "shortfall": format_amount(format_units(int(shortfall), 18)),
            "healthFactor": health_factor(total_collateral_usd, total_borrow_usd),
            "totalCollateralUSD": total_collateral_usd,
            "totalBorrowUSD": total_borrow_usd,
            "positions": positions,
        }

    async def get_protocol_stats(self) -> Dict[str, Any]:
        markets = await self.get_all_markets()
        total_tvl = sum(float(m["totalSupply"]) * m["price"] for m in markets)
        total_borrows = sum(float(m["totalBorrows"]) * m["price"] for m in markets)
        utilization = total_borrows / total_tvl * 100 if total_tvl > 0 else 0.0
        if utilization < 80:
            health = "Healthy"
        elif utilization < 90:
            health = "Moderate Risk"
        else:
            health = "High Risk"
        return {
            "totalTVL": total_tvl,
            "totalBorrows": total_borrows,
            "utilization": round(utilization, 2),
            "protocolHealth": health,
            "markets": markets,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _require_signer(self):
        if not self.signer.can_sign:
            raise ReadOnlyModeError(
                "This operation requires transaction mode. Provide a private key to enable transactions."
            )

    def _parse_amount(self, symbol: str, amount: Union[str, Decimal]) -> int:
        raw = parse_units(amount, Token[symbol].decimals)
        if raw <= 0:
            raise InvalidAmountError(f"Amount must be positive: {amount}")
        return raw

    def _call_market(self, symbol: str, function_name: str, amount_raw: int,
                     approve: bool) -> Dict[str, Any]:
        ctoken = self.ctokens[symbol]
        approval_tx_hash = None
        if approve and not Token[symbol].is_native:
            approval_tx_hash = ensure_allowance(
                self.reader, self.signer, Token[symbol].address, ctoken, amount_raw
            )
        tx_hash = self.signer.send_contract_transaction(ctoken, CTOKEN_ABI, function_name, (amount_raw,))
        logger.info(f"KiloLend {function_name} {symbol}: {tx_hash}")
        return {"txHash": tx_hash, "approvalTxHash": approval_tx_hash}

    async def supply(self, symbol: str, amount: Union[str, Decimal]) -> Dict[str, Any]:
        self._require_signer()
        symbol = self.market_symbol(symbol)
        amount_raw = self._parse_amount(symbol, amount)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._call_market, symbol, "mint", amount_raw, True)

    async def borrow(self, symbol: str, amount: Union[str, Decimal]) -> Dict[str, Any]:
        self._require_signer()
        symbol = self.market_symbol(symbol)
        amount_raw = self._parse_amount(symbol, amount)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._call_market, symbol, "borrow", amount_raw, False)

    async def repay(self, symbol: str, amount: Optional[Union[str, Decimal]] = None) -> Dict[str, Any]:
        """Repay a borrow; without an amount the whole debt is repaid."""
        self._require_signer()
        symbol = self.market_symbol(symbol)
        amount_raw = MAX_UINT256 if amount in (None, "") else self._parse_amount(symbol, amount)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._call_market, symbol, "repayBorrow", amount_raw, True)
