"""Tests for KiloLend market reads, account liquidity and lending writes."""

import asyncio

import pytest

from fakes import OWNER, FakeChain, FakePoolReader, FakePriceClient, FakeSigner
from kaia_mcp.config import KILOLEND_COMPTROLLER, KILOLEND_CTOKENS, MAX_UINT256
from kaia_mcp.errors import InvalidAmountError, ReadOnlyModeError, UnsupportedMarketError
from kaia_mcp.kilolend import MAX_APY_PERCENT, KiloLendClient, MarketData, health_factor, rate_to_apy
from kaia_mcp.tokens import Token

CUSDT = KILOLEND_CTOKENS["USDT"]
CKAIA = KILOLEND_CTOKENS["KAIA"]


def market_reads(calls):
    # exchange rate 0.02 for 8-decimal cTokens over 6-decimal USDT, supply rate,
    # borrow rate, cTokens, borrows, cash
    return [2 * 10**14, 10**9, 2 * 10**9, 5_000 * 10**8, 25 * 10**6, 75 * 10**6]


def make_client(chain=None, signer=None, reader=None, prices=None):
    chain = chain or FakeChain(multicall=market_reads)
    reader = reader or FakePoolReader(chain=chain)
    return KiloLendClient(chain, signer or FakeSigner(), reader, FakePriceClient(prices))


class TestMath:
    def test_zero_rate_has_zero_apy(self):
        assert rate_to_apy(0) == 0.0

    def test_apy_compounds_per_block(self):
        # ~3.2% simple rate per year at one block per second
        assert rate_to_apy(10**9) == pytest.approx(3.2, abs=0.05)

    def test_runaway_rate_is_capped(self):
        assert rate_to_apy(10**18) == MAX_APY_PERCENT
        assert rate_to_apy(10**13) == MAX_APY_PERCENT

    def test_health_factor(self):
        assert health_factor(100.0, 0.0) == 999.0
        assert health_factor(150.0, 100.0) == pytest.approx(1.5)

    def test_utilization(self):
        market = MarketData("USDT", CUSDT, 2 * 10**14, 0, 0, 5_000 * 10**8, 25 * 10**6, 0)
        assert market.total_underlying_supply == 100 * 10**6
        assert market.utilization == pytest.approx(25.0)


class TestMarketReads:
    def test_symbol_normalization(self):
        client = make_client()
        assert client.market_symbol("stkaia") == "STAKED_KAIA"
        assert client.market_symbol("MARBLEX") == "MBX"
        with pytest.raises(UnsupportedMarketError):
            client.market_symbol("USDC")

    def test_get_market(self):
        client = make_client(prices={"USDT": 1.0})
        market = asyncio.run(client.get_market("usdt"))
        assert market["symbol"] == "cUSDT"
        assert market["underlyingAddress"] == Token.USDT.address
        assert market["totalSupply"] == "100"
        assert market["totalBorrows"] == "25"
        assert market["cash"] == "75"
        assert market["utilizationRate"] == 25.0
        assert market["price"] == 1.0

    def test_all_markets_skips_unreadable(self):
        def reads(calls):
            if calls[0].address.lower() == CKAIA.lower():
                raise RuntimeError("execution reverted")
            return market_reads(calls)
        client = make_client(chain=FakeChain(multicall=reads))

        markets = asyncio.run(client.get_all_markets())

        symbols = [m["underlyingSymbol"] for m in markets]
        assert "KAIA" not in symbols
        assert len(symbols) == len(KILOLEND_CTOKENS) - 1

    def test_all_markets_survive_runaway_rates(self):
        def reads(calls):
            return [2 * 10**14, 10**18, 10**18, 5_000 * 10**8, 25 * 10**6, 75 * 10**6]
        client = make_client(chain=FakeChain(multicall=reads))

        markets = asyncio.run(client.get_all_markets())

        assert len(markets) == len(KILOLEND_CTOKENS)
        assert all(m["borrowApy"] == MAX_APY_PERCENT for m in markets)

    def test_protocol_stats(self):
        client = make_client(chain=FakeChain(multicall=market_reads), prices={"USDT": 1.0})
        client.ctokens = {"USDT": CUSDT}
        stats = asyncio.run(client.get_protocol_stats())
        assert stats["totalTVL"] == pytest.approx(100.0)
        assert stats["totalBorrows"] == pytest.approx(25.0)
        assert stats["utilization"] == 25.0
        assert stats["protocolHealth"] == "Healthy"


class TestAccountLiquidity:
    def test_positions_and_health_factor(self):
        def position_reads(calls):
            # error, cToken balance, borrow balance, exchange rate
            return [(0, 0, 50 * 10**6, 10**18), 200 * 10**6]

        chain = FakeChain(
            reads={
                "getAccountLiquidity": (0, 10 * 10**18, 0),
                "getAssetsIn": [CUSDT],
            },
            multicall=position_reads,
        )
        client = make_client(chain=chain, prices={"USDT": 1.0})

        result = asyncio.run(client.get_account_liquidity())

        assert result["account"] == OWNER
        assert result["liquidity"] == "10"
        assert result["totalCollateralUSD"] == pytest.approx(200.0)
        assert result["totalBorrowUSD"] == pytest.approx(50.0)
        assert result["healthFactor"] == pytest.approx(4.0)
        (position,) = result["positions"]
        assert position["symbol"] == "USDT"
        assert position["borrowBalance"] == "50"
        assert chain.calls[0] == ("read", KILOLEND_COMPTROLLER, "getAccountLiquidity", (OWNER,))

    def test_no_borrows(self):
        chain = FakeChain(reads={"getAccountLiquidity": (0, 0, 0), "getAssetsIn": []})
        result = asyncio.run(make_client(chain=chain).get_account_liquidity(OWNER))
        assert result["healthFactor"] == 999.0
        assert result["positions"] == []


class TestLendingWrites:
    def test_readonly(self):
        client = make_client(signer=FakeSigner(address=None))
        with pytest.raises(ReadOnlyModeError):
            asyncio.run(client.supply("USDT", "1"))

    def test_supply_approves_ctoken_first(self):
        signer = FakeSigner()
        client = make_client(signer=signer)

        tx = asyncio.run(client.supply("USDT", "12.5"))

        approve, mint = signer.sent
        assert approve["to"] == Token.USDT.address
        assert approve["args"] == (CUSDT, MAX_UINT256)
        assert mint["to"] == CUSDT
        assert mint["function"] == "mint"
        assert mint["args"] == (12_500_000,)
        assert tx == {"txHash": "0xmint2", "approvalTxHash": "0xapprove1"}

    def test_native_supply_needs_no_approval(self):
        signer = FakeSigner()
        asyncio.run(make_client(signer=signer).supply("KAIA", "1"))
        assert [s["function"] for s in signer.sent] == ["mint"]

    def test_borrow(self):
        signer = FakeSigner()
        asyncio.run(make_client(signer=signer).borrow("BORA", "3"))
        (borrow,) = signer.sent
        assert borrow["function"] == "borrow"
        assert borrow["args"] == (3 * 10**18,)

    def test_full_repay_uses_max(self):
        signer = FakeSigner()
        reader = FakePoolReader(allowance=MAX_UINT256)
        asyncio.run(make_client(signer=signer, reader=reader).repay("USDT"))
        (repay,) = signer.sent
        assert repay["function"] == "repayBorrow"
        assert repay["args"] == (MAX_UINT256,)

    def test_zero_amount_rejected(self):
        with pytest.raises(InvalidAmountError):
            asyncio.run(make_client().borrow("USDT", "0"))
