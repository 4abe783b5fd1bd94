"""
Known Kaia tokens and boundary parsing of token symbols/addresses.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from web3 import Web3

from .errors import InvalidTokenError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int


class Token(Enum):
    KAIA = TokenInfo("KAIA", ZERO_ADDRESS, 18)
    WKAIA = TokenInfo("WKAIA", "0x3a8B8E5395787622360e5348C8C93b432e5F2A6B", 18)
    USDT = TokenInfo("USDT", "0xd077a400968890eacc75cdc901f0356c943e4fdb", 6)
    USDT_WORMHOLE = TokenInfo("USDT_WORMHOLE", "0x5C13E303a62Fc5DEdf5B52D66873f2E59fEdADC2", 6)
    USDC = TokenInfo("USDC", "0x5c7F8A570d578ED84E63fdFA7b1eE72dE1a1476A", 6)
    BORA = TokenInfo("BORA", "0x02cbE46fB8A1F579254a9B485788f2D86Cad51aa", 18)
    SIX = TokenInfo("SIX", "0xEf82b1C6A550e730D8283E1eDD4977cd01FAF435", 18)
    MBX = TokenInfo("MBX", "0xD068c52d81f4409B9502dA926aCE3301cc41f623", 18)
    STAKED_KAIA = TokenInfo("STAKED_KAIA", "0x42952B873ed6f7f0A7E4992E2a9818E3A9001995", 18)

    @property
    def symbol(self) -> str:
        return self.value.symbol

    @property
    def address(self) -> str:
        return Web3.to_checksum_address(self.value.address)

    @property
    def decimals(self) -> int:
        return self.value.decimals

    @property
    def is_native(self) -> bool:
        return self is Token.KAIA


# Accepted aliases besides the enum member names
SYMBOL_ALIASES = {
    "WKAI": Token.WKAIA,
    "STKAIA": Token.STAKED_KAIA,
    "MARBLEX": Token.MBX,
}


def find_token(address: str) -> Optional[Token]:
    """Return the known token for an address, if any."""
    for token in Token:
        if token.value.address.lower() == address.lower():
            return token
    return None


def token_by_symbol(symbol: str) -> Optional[Token]:
    key = symbol.strip().upper()
    if key in Token.__members__:
        return Token[key]
    return SYMBOL_ALIASES.get(key)


def resolve_token(value: str) -> str:
    """Parse a token symbol or hex address into a checksummed address.

    Args:
        value: Symbol such as 'KAIA' or 'usdt', or a 0x-prefixed address.

    Returns:
        Checksummed token address (the zero address for native KAIA).

    Raises:
        InvalidTokenError: if the value is neither a known symbol nor a valid address.
    """
    if not value or not value.strip():
        raise InvalidTokenError("Token symbol or address is required")

    token = token_by_symbol(value)
    if token is not None:
        return token.address

    candidate = value.strip()
    if candidate.startswith("0x") and len(candidate) == 42 and Web3.is_address(candidate):
        return Web3.to_checksum_address(candidate)

    raise InvalidTokenError(f"Invalid token address or symbol: {value}")


def is_native(address: str) -> bool:
    return address.lower() == ZERO_ADDRESS


def pool_token(address: str) -> str:
    """Native KAIA trades through WKAIA pools."""
    return Token.WKAIA.address if is_native(address) else address


def display_symbol(address: str) -> str:
    """Known symbol for an address, or a shortened address."""
    token = find_token(address)
    if token is not None:
        return token.symbol
    return f"{address[:6]}...{address[-4:]}"
