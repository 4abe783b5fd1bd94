"""
Decimal-safe unit conversion and Q96 price math.

Raw amounts are integers in a token's smallest unit; human amounts are
Decimals. Nothing in here touches float.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Union

from .errors import InvalidAmountError

Q96 = 2**96
Q192 = 2**192

# Enough digits for uint160 squared plus 18-decimal rescaling
PRECISION = 120

TICK_BASE = Decimal("1.0001")

Number = Union[str, int, Decimal]


def to_decimal(amount: Number) -> Decimal:
    """Parse a human amount, rejecting floats, NaN and infinities."""
    if isinstance(amount, float):
        raise InvalidAmountError("Amounts must be given as strings or Decimals, not float")
    try:
        value = Decimal(str(amount).strip()) if not isinstance(amount, Decimal) else amount
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"Invalid amount: {amount}")
    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount: {amount}")
    return value


def parse_units(amount: Number, decimals: int) -> int:
    """Convert a human amount to raw units, truncating sub-unit digits."""
    if decimals < 0:
        raise InvalidAmountError(f"Invalid decimals: {decimals}")
    value = to_decimal(amount)
    if value < 0:
        raise InvalidAmountError(f"Amount must not be negative: {amount}")
    with localcontext() as ctx:
        ctx.prec = PRECISION
        raw = value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(raw)


def format_units(raw: int, decimals: int) -> Decimal:
    """Convert raw units to an exact human Decimal."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return Decimal(raw).scaleb(-decimals)


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> Decimal:
    """Raw token1-per-token0 price: (sqrtPriceX96 / 2^96)^2."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q192)


def tick_to_price(tick: int) -> Decimal:
    """Raw token1-per-token0 price at a tick: 1.0001^tick."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return TICK_BASE ** tick


def human_price(price_raw: Decimal, token0_decimals: int, token1_decimals: int) -> Decimal:
    """Rescale a raw pool price into human token1 per token0."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return price_raw.scaleb(token0_decimals - token1_decimals)


def format_amount(value: Decimal, places: int = 18) -> str:
    """Plain (non-scientific) string for a Decimal, trailing zeros removed."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        quantized = value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
