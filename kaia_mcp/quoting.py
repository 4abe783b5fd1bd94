"""
Swap quoting math for DragonSwap V3 pools.

Quotes are computed from the pool's current sqrtPriceX96 alone. The output
is the instantaneous-price approximation: it does not integrate across the
ticks a large trade would cross, so large trades relative to liquidity are
over-quoted. Price impact and liquidity scores are heuristics layered on top
to steer tier selection away from thin pools.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Sequence

from .errors import (
    InvalidPairError,
    InvalidSlippageError,
    NoLiquidityError,
    NoQuotesError,
)
from .fixed_point import PRECISION, format_units, human_price, sqrt_price_x96_to_price
from .pool_reader import PoolState

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10000


class FeeTier(IntEnum):
    LOWEST = 100     # 0.01%
    LOW = 500        # 0.05%
    MEDIUM = 1000    # 0.1%
    HIGH = 3000      # 0.3%
    HIGHEST = 10000  # 1%

    @property
    def label(self) -> str:
        return FEE_TIER_LABELS[self]


FEE_TIER_LABELS = {
    FeeTier.LOWEST: "Lowest (0.01%)",
    FeeTier.LOW: "Low (0.05%)",
    FeeTier.MEDIUM: "Medium (0.1%)",
    FeeTier.HIGH: "High (0.3%)",
    FeeTier.HIGHEST: "Highest (1%)",
}


def fee_tier_name(fee: int) -> str:
    try:
        return FeeTier(fee).label
    except ValueError:
        return f"{fee / 10000}%"


class TradeSizeCategory(str, Enum):
    MICRO = "micro"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    WHALE = "whale"


# Upper bounds in human units; anything at or above the last bound is a whale trade
TRADE_SIZE_THRESHOLDS = [
    (Decimal(10), TradeSizeCategory.MICRO),
    (Decimal(100), TradeSizeCategory.SMALL),
    (Decimal(1000), TradeSizeCategory.MEDIUM),
    (Decimal(10000), TradeSizeCategory.LARGE),
]

# Small trades probe cheap tiers first; large trades start where deep pools usually live
TIER_PROBE_ORDER: Dict[TradeSizeCategory, List[FeeTier]] = {
    TradeSizeCategory.MICRO: [FeeTier.LOWEST, FeeTier.LOW, FeeTier.MEDIUM, FeeTier.HIGH, FeeTier.HIGHEST],
    TradeSizeCategory.SMALL: [FeeTier.LOW, FeeTier.LOWEST, FeeTier.MEDIUM, FeeTier.HIGH, FeeTier.HIGHEST],
    TradeSizeCategory.MEDIUM: [FeeTier.MEDIUM, FeeTier.LOW, FeeTier.HIGH, FeeTier.LOWEST, FeeTier.HIGHEST],
    TradeSizeCategory.LARGE: [FeeTier.HIGH, FeeTier.MEDIUM, FeeTier.HIGHEST, FeeTier.LOW, FeeTier.LOWEST],
    TradeSizeCategory.WHALE: [FeeTier.HIGHEST, FeeTier.HIGH, FeeTier.MEDIUM, FeeTier.LOW, FeeTier.LOWEST],
}


def classify_trade_size(amount_in_raw: int, decimals: int) -> TradeSizeCategory:
    amount = format_units(amount_in_raw, decimals)
    for bound, category in TRADE_SIZE_THRESHOLDS:
        if amount < bound:
            return category
    return TradeSizeCategory.WHALE


def ordered_tiers(amount_in_raw: int, decimals: int) -> List[FeeTier]:
    """Fee tiers in probe order for the trade's size class."""
    return list(TIER_PROBE_ORDER[classify_trade_size(amount_in_raw, decimals)])


def compute_amount_out(pool: PoolState, token_in: str, amount_in_raw: int,
                       token_in_decimals: int, token_out_decimals: int) -> int:
    """Raw output for an exact-input swap at the pool's current price.

    The pool price is always token1 per token0, so the decimal rescaling
    uses token0/token1 decimals whatever the swap direction.

    Raises:
        NoLiquidityError: pool liquidity is zero.
        InvalidPairError: token_in is not one of the pool's tokens.
    """
    if pool.liquidity == 0:
        raise NoLiquidityError(f"Pool has no liquidity for fee tier {pool.fee}")

    if token_in.lower() == pool.token0.lower():
        is_token0_input = True
    elif token_in.lower() == pool.token1.lower():
        is_token0_input = False
    else:
        raise InvalidPairError(f"Token {token_in} is not part of pool {pool.address}")

    if is_token0_input:
        token0_decimals, token1_decimals = token_in_decimals, token_out_decimals
    else:
        token0_decimals, token1_decimals = token_out_decimals, token_in_decimals

    price = human_price(sqrt_price_x96_to_price(pool.sqrt_price_x96), token0_decimals, token1_decimals)
    amount_in = format_units(amount_in_raw, token_in_decimals)

    with localcontext() as ctx:
        ctx.prec = PRECISION
        if is_token0_input:
            amount_out = amount_in * price
        else:
            if price == 0:
                return 0
            amount_out = amount_in / price
        raw = amount_out.scaleb(token_out_decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(raw)


def liquidity_score(amount_in_raw: int, liquidity: int) -> float:
    """1 / (1 + 10 * size/liquidity); 0 for an empty pool."""
    if liquidity <= 0:
        return 0.0
    return 1 / (1 + (amount_in_raw / liquidity) * 10)


def price_impact_percent(amount_in_raw: int, liquidity: int) -> float:
    if amount_in_raw + liquidity <= 0:
        return 0.0
    return min(100.0, amount_in_raw / (amount_in_raw + liquidity) * 100)


@dataclass(frozen=True)
class CandidateQuote:
    """A per-tier quote awaiting selection."""
    pool: PoolState
    amount_in_raw: int
    amount_out_raw: int
    amount_out_human: Decimal
    liquidity_score: float
    price_impact_percent: float
    combined_score: Optional[float] = None

    @property
    def fee(self) -> int:
        return self.pool.fee


def build_candidate(pool: PoolState, token_in: str, amount_in_raw: int,
                    token_in_decimals: int, token_out_decimals: int) -> CandidateQuote:
    amount_out_raw = compute_amount_out(pool, token_in, amount_in_raw, token_in_decimals, token_out_decimals)
    return CandidateQuote(
        pool=pool,
        amount_in_raw=amount_in_raw,
        amount_out_raw=amount_out_raw,
        amount_out_human=format_units(amount_out_raw, token_out_decimals),
        liquidity_score=liquidity_score(amount_in_raw, pool.liquidity),
        price_impact_percent=price_impact_percent(amount_in_raw, pool.liquidity),
    )


def combined_score(candidate: CandidateQuote, best_output: Decimal) -> float:
    output_score = float(candidate.amount_out_human / best_output) if best_output > 0 else 0.0
    return (
        0.4 * output_score
        + 0.3 * candidate.liquidity_score
        + 0.2 * (1 - candidate.price_impact_percent / 100)
        + 0.1 * (1 - candidate.fee / BPS_DENOMINATOR)
    )


def select_best(candidates: Sequence[CandidateQuote]) -> CandidateQuote:
    """Highest combined score wins; ties go to the earliest candidate.

    A single candidate is returned as-is without scoring.
    """
    if not candidates:
        raise NoQuotesError("No quotes to select from")
    if len(candidates) == 1:
        return candidates[0]

    best_output = max(c.amount_out_human for c in candidates)
    best = None
    for candidate in candidates:
        scored = replace(candidate, combined_score=combined_score(candidate, best_output))
        logger.debug(f"Fee tier {scored.fee}: out={scored.amount_out_raw} score={scored.combined_score:.6f}")
        if best is None or scored.combined_score > best.combined_score:
            best = scored
    return best


def validate_slippage(slippage_bps: int) -> int:
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise InvalidSlippageError(f"Slippage must be an integer number of basis points: {slippage_bps}")
    if slippage_bps < 0 or slippage_bps >= BPS_DENOMINATOR:
        raise InvalidSlippageError(f"Slippage must be in [0, {BPS_DENOMINATOR}) basis points, got {slippage_bps}")
    return slippage_bps


def apply_minimum_out(amount_out_raw: int, slippage_bps: int) -> int:
    """floor(amount_out * (10000 - slippage) / 10000)."""
    validate_slippage(slippage_bps)
    return amount_out_raw * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR
