"""In-memory stand-ins for the chain, reader, signer and price collaborators."""

from typing import Any, Callable, Dict, List, Optional, Sequence

from web3.datastructures import AttributeDict

from kaia_mcp.pool_reader import PoolState, sort_tokens

OWNER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"


def make_pool(token_a: str, token_b: str, fee: int, liquidity: int, sqrt_price_x96: int,
              tick: int = 0, address: Optional[str] = None) -> PoolState:
    token0, token1 = sort_tokens(token_a, token_b)
    return PoolState(
        address=address or f"0x{fee:040x}",
        token0=token0,
        token1=token1,
        fee=fee,
        liquidity=liquidity,
        sqrt_price_x96=sqrt_price_x96,
        tick=tick,
    )


def receipt(status: int = 1, block_number: int = 100, gas_used: int = 150000) -> AttributeDict:
    return AttributeDict({"status": status, "blockNumber": block_number, "gasUsed": gas_used})


class FakeChain:
    """ChainClient double: canned read results keyed by function name."""

    def __init__(self, reads: Optional[Dict[str, Any]] = None,
                 multicall: Optional[Callable[[Sequence[Any]], List[Any]]] = None,
                 balances: Optional[Dict[str, int]] = None,
                 receipts: Optional[Dict[str, Any]] = None):
        self.reads = reads or {}
        self.multicall_handler = multicall
        self.balances = balances or {}
        self.receipts = receipts or {}
        self.calls: List[tuple] = []

    def read_contract(self, address, abi, function_name, args=()):
        self.calls.append(("read", address, function_name, tuple(args)))
        value = self.reads[function_name]
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(address, *args)
        return value

    def multicall(self, calls):
        self.calls.append(("multicall", [c.function_name for c in calls]))
        return self.multicall_handler(calls)

    def get_balance(self, address):
        return self.balances.get(address.lower(), 0)

    def wait_for_receipt(self, tx_hash, timeout=120.0):
        result = self.receipts.get(tx_hash, receipt())
        if isinstance(result, Exception):
            raise result
        return result


class FakePoolReader:
    """PoolStateReader double serving fixed pools per fee tier."""

    def __init__(self, pools: Sequence[PoolState] = (), decimals: Optional[Dict[str, int]] = None,
                 allowance: int = 0, balances: Optional[Dict[str, int]] = None,
                 chain: Optional[FakeChain] = None):
        self.pools = {p.fee: p for p in pools}
        self.decimals = {k.lower(): v for k, v in (decimals or {}).items()}
        self.allowance = allowance
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.chain = chain or FakeChain()
        self.calls: List[tuple] = []

    def get_pool_state(self, token_a, token_b, fee):
        self.calls.append(("get_pool_state", token_a, token_b, fee))
        pool = self.pools.get(fee)
        if pool is not None and pool.has_token(token_a) and pool.has_token(token_b):
            return pool
        return None

    def get_all_pool_states(self, token_a, token_b):
        self.calls.append(("get_all_pool_states", token_a, token_b))
        return [p for p in self.pools.values() if p.has_token(token_a) and p.has_token(token_b)]

    def get_token_decimals(self, token):
        self.calls.append(("get_token_decimals", token))
        return self.decimals.get(token.lower(), 18)

    def get_allowance(self, token, owner, spender):
        self.calls.append(("get_allowance", token, owner, spender))
        return self.allowance

    def get_balance(self, token, owner):
        self.calls.append(("get_balance", token, owner))
        return self.balances.get(token.lower(), 0)


class FakeSigner:
    """TransactionSigner double that records submissions."""

    def __init__(self, address: Optional[str] = OWNER, fail_on: Sequence[str] = ()):
        self.address = address
        self.fail_on = set(fail_on)
        self.sent: List[Dict[str, Any]] = []

    @property
    def can_sign(self) -> bool:
        return self.address is not None

    def send_contract_transaction(self, address, abi, function_name, args=(), value=0, default_gas=300000):
        if function_name in self.fail_on:
            raise RuntimeError(f"{function_name} rejected")
        self.sent.append({
            "to": address,
            "function": function_name,
            "args": tuple(args),
            "value": value,
        })
        return f"0x{function_name}{len(self.sent)}"

    def send_native(self, to, amount_wei):
        self.sent.append({"to": to, "function": "native", "args": (), "value": amount_wei})
        return f"0xnative{len(self.sent)}"


class FakePriceClient:
    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices = prices if prices is not None else {"KAIA": 0.1, "USDT": 1.0}

    async def get_price_map(self):
        return dict(self.prices)
