"""
DragonSwap V3 pool state reads.

Every read is fresh; pool state can change every block, so nothing here
is cached.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from web3 import Web3

from .abis import ERC20_ABI, FACTORY_ABI, POOL_ABI
from .chain import ChainClient, ContractCall
from .tokens import find_token, is_native

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18


@dataclass(frozen=True)
class PoolState:
    """Snapshot of one fee-tier pool. token0 < token1 by address."""
    address: str
    token0: str
    token1: str
    fee: int
    liquidity: int
    sqrt_price_x96: int
    tick: int

    def has_token(self, token: str) -> bool:
        return token.lower() in (self.token0.lower(), self.token1.lower())

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "token0": self.token0,
            "token1": self.token1,
            "fee": self.fee,
            "liquidity": str(self.liquidity),
            "sqrtPriceX96": str(self.sqrt_price_x96),
            "tick": self.tick,
        }


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Canonical (token0, token1) ordering by numeric address."""
    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    return token_b, token_a


class PoolStateReader:
    """Reads pool, token and allowance state through a ChainClient."""

    def __init__(self, chain: ChainClient, factory_address: str, fee_tiers: Iterable[int]):
        self.chain = chain
        self.factory_address = factory_address
        self.fee_tiers = [int(fee) for fee in fee_tiers]

    def get_pool_address(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        token0, token1 = sort_tokens(token_a, token_b)
        pool_address = self.chain.read_contract(
            self.factory_address, FACTORY_ABI, "getPool", (token0, token1, fee)
        )
        if not pool_address or int(pool_address, 16) == 0:
            return None
        return Web3.to_checksum_address(pool_address)

    def get_pool_state(self, token_a: str, token_b: str, fee: int) -> Optional[PoolState]:
        """Pool snapshot for the pair at a fee tier, or None if absent or unreadable."""
        try:
            pool_address = self.get_pool_address(token_a, token_b, fee)
            if pool_address is None:
                logger.debug(f"No pool for {token_a}/{token_b} at fee {fee}")
                return None

            token0, token1, pool_fee, liquidity, slot0 = self.chain.multicall([
                ContractCall(pool_address, POOL_ABI, "token0"),
                ContractCall(pool_address, POOL_ABI, "token1"),
                ContractCall(pool_address, POOL_ABI, "fee"),
                ContractCall(pool_address, POOL_ABI, "liquidity"),
                ContractCall(pool_address, POOL_ABI, "slot0"),
            ])

            return PoolState(
                address=pool_address,
                token0=Web3.to_checksum_address(token0),
                token1=Web3.to_checksum_address(token1),
                fee=int(pool_fee),
                liquidity=int(liquidity),
                sqrt_price_x96=int(slot0[0]),
                tick=int(slot0[1]),
            )
        except Exception as e:
            logger.debug(f"Pool read failed for {token_a}/{token_b} at fee {fee}: {e}")
            return None

    def get_all_pool_states(self, token_a: str, token_b: str) -> List[PoolState]:
        """Every existing pool for the pair across known fee tiers."""
        pools = []
        for fee in self.fee_tiers:
            pool = self.get_pool_state(token_a, token_b, fee)
            if pool is not None:
                pools.append(pool)
        return pools

    def get_token_decimals(self, token: str) -> int:
        if is_native(token):
            return DEFAULT_DECIMALS
        try:
            return int(self.chain.read_contract(token, ERC20_ABI, "decimals"))
        except Exception as e:
            known = find_token(token)
            fallback = known.decimals if known else DEFAULT_DECIMALS
            logger.warning(f"Failed to read decimals for {token}: {e}, using {fallback}")
            return fallback

    def get_allowance(self, token: str, owner: str, spender: str) -> int:
        return int(self.chain.read_contract(token, ERC20_ABI, "allowance", (owner, spender)))

    def get_balance(self, token: str, owner: str) -> int:
        if is_native(token):
            return int(self.chain.get_balance(owner))
        return int(self.chain.read_contract(token, ERC20_ABI, "balanceOf", (owner,)))
