"""
DragonSwap exact-input quoting and swap execution.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from .abis import ERC20_ABI, SWAP_ROUTER_ABI
from .chain import ChainClient, TransactionSigner
from .config import DEFAULT_DEADLINE_MINUTES, DEFAULT_SLIPPAGE_BPS, MAX_UINT256
from .errors import (
    InsufficientAllowanceError,
    InvalidAmountError,
    InvalidPairError,
    InvalidTokenError,
    NoLiquidityError,
    NoPoolError,
    ReadOnlyModeError,
    TransactionError,
)
from .fixed_point import format_amount, format_units, parse_units
from .pool_reader import PoolStateReader
from .quoting import (
    CandidateQuote,
    apply_minimum_out,
    build_candidate,
    fee_tier_name,
    ordered_tiers,
    select_best,
    validate_slippage,
)
from .tokens import display_symbol, is_native, pool_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapQuote:
    """Final quote for an exact-input swap.

    amount_out is the expected output at the pool's current price;
    amount_out_minimum is that amount after slippage tolerance and is what
    the swap transaction enforces.
    """
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    amount_out_minimum: int
    fee_tier: int
    pool_address: str
    pool_liquidity: int
    price_impact_percent: float
    liquidity_score: float
    slippage_bps: int
    amount_in_decimals: int
    amount_out_decimals: int
    combined_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        minimum_formatted = format_amount(format_units(self.amount_out_minimum, self.amount_out_decimals))
        return {
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amountIn": str(self.amount_in),
            "amountInFormatted": format_amount(format_units(self.amount_in, self.amount_in_decimals)),
            # Headline amountOut stays the slippage-protected minimum
            "amountOut": str(self.amount_out_minimum),
            "amountOutFormatted": minimum_formatted,
            "amountOutMinimum": str(self.amount_out_minimum),
            "expectedAmountOut": str(self.amount_out),
            "expectedAmountOutFormatted": format_amount(format_units(self.amount_out, self.amount_out_decimals)),
            "slippageBps": self.slippage_bps,
            "feeTier": self.fee_tier,
            "feeTierName": fee_tier_name(self.fee_tier),
            "poolAddress": self.pool_address,
            "priceImpact": round(self.price_impact_percent, 6),
            "liquidityScore": round(self.liquidity_score, 6),
            "route": {
                "pools": [{
                    "address": self.pool_address,
                    "fee": self.fee_tier,
                    "liquidity": str(self.pool_liquidity),
                }]
            },
        }


class SwapQuoteService:
    """Quotes exact-input swaps from raw pool state across fee tiers.

    Stateless: every call reads fresh pool state through the reader.
    """

    def __init__(self, reader: PoolStateReader):
        self.reader = reader

    async def _probe_tiers(self, token_in: str, token_out: str,
                           tiers: List[int]) -> Tuple[int, List[Any]]:
        loop = asyncio.get_event_loop()
        decimals_task = loop.run_in_executor(None, self.reader.get_token_decimals, token_out)
        pool_tasks = [
            loop.run_in_executor(None, self.reader.get_pool_state, token_in, token_out, int(fee))
            for fee in tiers
        ]
        decimals_out, *pools = await asyncio.gather(decimals_task, *pool_tasks)
        return decimals_out, pools

    async def get_quote(self, token_in: str, token_out: str, amount_in: Union[str, Decimal],
                        decimals_in: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS) -> SwapQuote:
        """Best exact-input quote for the pair with minimum output applied.

        Args:
            token_in: Input token address (zero address for native KAIA)
            token_out: Output token address
            amount_in: Human-readable input amount, e.g. '1.5'
            decimals_in: Decimals of the input token
            slippage_bps: Slippage tolerance in basis points

        Raises:
            InvalidSlippageError, InvalidAmountError, InvalidTokenError: before any chain read.
            NoLiquidityError: pools exist but every one is empty.
            NoPoolError: no usable pool at any fee tier.
        """
        validate_slippage(slippage_bps)
        amount_in_raw = parse_units(amount_in, decimals_in)
        if amount_in_raw <= 0:
            raise InvalidAmountError(f"Amount must be positive: {amount_in}")

        pool_in, pool_out = pool_token(token_in), pool_token(token_out)
        if pool_in.lower() == pool_out.lower():
            raise InvalidTokenError("tokenIn and tokenOut must be different tokens")

        tiers = ordered_tiers(amount_in_raw, decimals_in)
        decimals_out, pools = await self._probe_tiers(pool_in, pool_out, tiers)

        candidates: List[CandidateQuote] = []
        empty_pool = False
        for fee, pool in zip(tiers, pools):
            if pool is None:
                continue
            try:
                candidates.append(build_candidate(pool, pool_in, amount_in_raw, decimals_in, decimals_out))
            except NoLiquidityError as e:
                empty_pool = True
                logger.debug(f"Skipping fee tier {fee}: {e}")
            except InvalidPairError as e:
                logger.debug(f"Skipping fee tier {fee}: {e}")

        if not candidates and empty_pool:
            raise NoLiquidityError(
                f"Pools for {display_symbol(token_in)}/{display_symbol(token_out)} have no liquidity "
                f"({token_in}/{token_out})"
            )
        if not candidates:
            raise NoPoolError(
                f"No available pools found for {display_symbol(token_in)}/{display_symbol(token_out)} "
                f"({token_in}/{token_out})"
            )

        best = select_best(candidates)
        amount_out_minimum = apply_minimum_out(best.amount_out_raw, slippage_bps)
        logger.info(
            f"Quote {display_symbol(token_in)}->{display_symbol(token_out)}: "
            f"fee {best.fee}, out {best.amount_out_raw}, min {amount_out_minimum}"
        )

        return SwapQuote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in_raw,
            amount_out=best.amount_out_raw,
            amount_out_minimum=amount_out_minimum,
            fee_tier=best.fee,
            pool_address=best.pool.address,
            pool_liquidity=best.pool.liquidity,
            price_impact_percent=best.price_impact_percent,
            liquidity_score=best.liquidity_score,
            slippage_bps=slippage_bps,
            amount_in_decimals=decimals_in,
            amount_out_decimals=decimals_out,
            combined_score=best.combined_score,
        )


def validate_deadline(deadline_minutes: int) -> int:
    if isinstance(deadline_minutes, bool) or not isinstance(deadline_minutes, int) or deadline_minutes <= 0:
        raise ValueError(f"Deadline must be a positive number of minutes: {deadline_minutes}")
    return deadline_minutes


def ensure_allowance(reader: PoolStateReader, signer: TransactionSigner, token: str,
                     spender: str, amount: int) -> Optional[str]:
    """Approve spender for MAX_UINT256 when the current allowance is below amount.

    Returns the approval transaction hash, or None when no approval was needed.

    Raises:
        InsufficientAllowanceError: the approval could not be sent or reverted.
    """
    allowance = reader.get_allowance(token, signer.address, spender)
    if allowance >= amount:
        return None

    logger.info(f"Allowance {allowance} below {amount} for {token}, approving {spender}")
    tx_hash = None
    try:
        tx_hash = signer.send_contract_transaction(
            token, ERC20_ABI, "approve", (spender, MAX_UINT256), default_gas=100000
        )
        receipt = reader.chain.wait_for_receipt(tx_hash)
    except Exception as e:
        raise InsufficientAllowanceError(f"Token approval failed: {e}", tx_hash) from e

    if receipt.status != 1:
        raise InsufficientAllowanceError("Token approval transaction reverted", tx_hash)
    return tx_hash


@dataclass
class SwapResult:
    quote: SwapQuote
    tx_hash: str
    status: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    approval_tx_hash: Optional[str] = None
    recipient: Optional[str] = None
    deadline: Optional[int] = None


class SwapExecutor:
    """Runs an exact-input swap: fresh quote, approval if needed, router call."""

    def __init__(self, quote_service: SwapQuoteService, chain: ChainClient,
                 signer: TransactionSigner, router_address: str):
        self.quote_service = quote_service
        self.reader = quote_service.reader
        self.chain = chain
        self.signer = signer
        self.router_address = router_address

    def _submit_swap(self, params: tuple, value: int) -> Tuple[str, Any]:
        tx_hash = None
        try:
            tx_hash = self.signer.send_contract_transaction(
                self.router_address, SWAP_ROUTER_ABI, "exactInputSingle", (params,), value=value
            )
            receipt = self.chain.wait_for_receipt(tx_hash)
        except Exception as e:
            raise TransactionError(f"Swap transaction failed: {e}", tx_hash) from e

        if receipt.status != 1:
            raise TransactionError("Swap transaction reverted", tx_hash)
        return tx_hash, receipt

    async def execute_exact_input(self, token_in: str, token_out: str, amount_in: Union[str, Decimal],
                                  decimals_in: int, slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
                                  recipient: Optional[str] = None,
                                  deadline_minutes: int = DEFAULT_DEADLINE_MINUTES) -> SwapResult:
        """Quote and execute a swap. Transaction failures are never retried."""
        if not self.signer.can_sign:
            raise ReadOnlyModeError(
                "This operation requires transaction mode. Provide a private key to enable transactions."
            )
        validate_deadline(deadline_minutes)

        quote = await self.quote_service.get_quote(token_in, token_out, amount_in, decimals_in, slippage_bps)
        recipient = recipient or self.signer.address
        loop = asyncio.get_event_loop()

        approval_tx_hash = None
        if not is_native(token_in):
            approval_tx_hash = await loop.run_in_executor(
                None, ensure_allowance, self.reader, self.signer,
                token_in, self.router_address, quote.amount_in,
            )

        deadline = int(time.time()) + deadline_minutes * 60
        params = (
            pool_token(token_in),
            pool_token(token_out),
            quote.fee_tier,
            recipient,
            deadline,
            quote.amount_in,
            quote.amount_out_minimum,
            0,  # no price limit
        )
        value = quote.amount_in if is_native(token_in) else 0

        tx_hash, receipt = await loop.run_in_executor(None, self._submit_swap, params, value)
        logger.info(f"Swap confirmed: {tx_hash}")

        return SwapResult(
            quote=quote,
            tx_hash=tx_hash,
            status="success",
            block_number=receipt.blockNumber,
            gas_used=receipt.gasUsed,
            approval_tx_hash=approval_tx_hash,
            recipient=recipient,
            deadline=deadline,
        )
