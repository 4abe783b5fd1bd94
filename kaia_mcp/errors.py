"""Exception types raised by the KAIA MCP services."""

from typing import Optional


class KaiaMCPError(Exception):
    """Base class for all KAIA MCP errors."""


class InvalidTokenError(KaiaMCPError):
    """Token symbol or address could not be resolved."""


class InvalidAmountError(KaiaMCPError):
    """Amount is malformed, negative or zero."""


class InvalidSlippageError(KaiaMCPError):
    """Slippage is outside the [0, 10000) basis point range."""


class NoPoolError(KaiaMCPError):
    """No pool exists for the pair at any probed fee tier."""


class NoLiquidityError(KaiaMCPError):
    """Pool exists but holds zero liquidity."""


class InvalidPairError(KaiaMCPError):
    """Token is neither token0 nor token1 of the pool."""


class NoQuotesError(KaiaMCPError):
    """Quote selection was given no candidates."""


class ReadOnlyModeError(KaiaMCPError):
    """A write operation was requested without a signing key."""


class UnsupportedMarketError(KaiaMCPError):
    """No KiloLend market is listed for the symbol."""


class InsufficientBalanceError(KaiaMCPError):
    """Wallet balance does not cover the requested amount."""

    def __init__(self, symbol: str, requested: str, available: str):
        super().__init__(
            f"Insufficient {symbol} balance: requested {requested}, available {available}"
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class TransactionError(KaiaMCPError):
    """A submitted transaction reverted or its receipt could not be obtained."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class InsufficientAllowanceError(TransactionError):
    """The approval required before a swap or supply failed."""
