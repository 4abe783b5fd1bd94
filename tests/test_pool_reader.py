"""Tests for pool state reads through a fake chain client."""

from fakes import FakeChain
from kaia_mcp.fixed_point import Q96
from kaia_mcp.pool_reader import PoolStateReader, sort_tokens
from kaia_mcp.quoting import FeeTier
from kaia_mcp.tokens import ZERO_ADDRESS, Token

FACTORY = "0x7431A23897ecA6913D5c81666345D39F27d946A4"
POOL = "0x00000000000000000000000000000000000000aa"


def slot0(sqrt_price_x96=Q96, tick=0):
    return (sqrt_price_x96, tick, 0, 1, 1, 0, True)


def pool_multicall(token0, token1, fee=3000, liquidity=10**20, sqrt_price_x96=Q96, tick=0):
    def handler(calls):
        return [token0, token1, fee, liquidity, slot0(sqrt_price_x96, tick)]
    return handler


class TestSortTokens:
    def test_orders_by_numeric_address(self):
        usdt, six = Token.USDT.address, Token.SIX.address
        assert sort_tokens(six, usdt) == (usdt, six)
        assert sort_tokens(usdt, six) == (usdt, six)


class TestGetPoolState:
    def test_reads_pool_in_one_batch(self):
        usdt, six = Token.USDT.address, Token.SIX.address
        chain = FakeChain(
            reads={"getPool": POOL},
            multicall=pool_multicall(usdt, six, liquidity=5 * 10**20, tick=-5),
        )
        reader = PoolStateReader(chain, FACTORY, list(FeeTier))

        pool = reader.get_pool_state(six, usdt, 3000)

        assert pool.address.lower() == POOL
        assert (pool.token0, pool.token1) == (usdt, six)
        assert pool.liquidity == 5 * 10**20
        assert pool.sqrt_price_x96 == Q96
        assert pool.tick == -5
        # factory is asked with sorted tokens; state comes from one multicall
        assert chain.calls[0] == ("read", FACTORY, "getPool", (usdt, six, 3000))
        assert chain.calls[1] == ("multicall", ["token0", "token1", "fee", "liquidity", "slot0"])

    def test_zero_address_means_no_pool(self):
        chain = FakeChain(reads={"getPool": ZERO_ADDRESS})
        reader = PoolStateReader(chain, FACTORY, list(FeeTier))
        assert reader.get_pool_state(Token.USDT.address, Token.SIX.address, 500) is None
        assert len(chain.calls) == 1

    def test_read_errors_become_none(self):
        def failing(calls):
            raise RuntimeError("execution reverted")
        chain = FakeChain(reads={"getPool": POOL}, multicall=failing)
        reader = PoolStateReader(chain, FACTORY, list(FeeTier))
        assert reader.get_pool_state(Token.USDT.address, Token.SIX.address, 500) is None

    def test_all_pool_states_probes_every_tier(self):
        usdt, six = Token.USDT.address, Token.SIX.address

        def get_pool(address, token0, token1, fee):
            return POOL if fee in (500, 3000) else ZERO_ADDRESS

        chain = FakeChain(reads={"getPool": get_pool}, multicall=pool_multicall(usdt, six))
        reader = PoolStateReader(chain, FACTORY, list(FeeTier))

        pools = reader.get_all_pool_states(usdt, six)

        assert len(pools) == 2
        probed = [c[3][2] for c in chain.calls if c[0] == "read"]
        assert probed == [100, 500, 1000, 3000, 10000]


class TestTokenReads:
    def test_decimals_from_chain(self):
        chain = FakeChain(reads={"decimals": 6})
        reader = PoolStateReader(chain, FACTORY, [])
        assert reader.get_token_decimals(Token.USDC.address) == 6

    def test_native_is_18_without_a_read(self):
        chain = FakeChain()
        reader = PoolStateReader(chain, FACTORY, [])
        assert reader.get_token_decimals(ZERO_ADDRESS) == 18
        assert chain.calls == []

    def test_decimals_fallback(self):
        chain = FakeChain(reads={"decimals": RuntimeError("no code")})
        reader = PoolStateReader(chain, FACTORY, [])
        assert reader.get_token_decimals(Token.USDT.address) == 6
        assert reader.get_token_decimals("0x" + "9" * 40) == 18

    def test_balances_and_allowance(self):
        owner = "0x1111111111111111111111111111111111111111"
        chain = FakeChain(
            reads={"balanceOf": 42, "allowance": 7},
            balances={owner: 10**18},
        )
        reader = PoolStateReader(chain, FACTORY, [])
        assert reader.get_balance(ZERO_ADDRESS, owner) == 10**18
        assert reader.get_balance(Token.USDT.address, owner) == 42
        assert reader.get_allowance(Token.USDT.address, owner, FACTORY) == 7
