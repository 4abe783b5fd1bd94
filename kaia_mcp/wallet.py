"""
Wallet balances and plain transfers for the configured account.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from web3 import Web3

from .abis import ERC20_ABI
from .chain import ChainClient, TransactionSigner
from .errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTokenError,
    KaiaMCPError,
    ReadOnlyModeError,
)
from .fixed_point import format_amount, format_units, parse_units
from .pool_reader import PoolStateReader
from .prices import PriceClient
from .tokens import Token, token_by_symbol

logger = logging.getLogger(__name__)

# Balances worth less than this are left out of the wallet summary
MIN_DISPLAY_USD = 0.01

# Wrapped tokens priced as their underlying
PRICE_ALIASES = {"WKAIA": "KAIA", "USDT_WORMHOLE": "USDT", "USDC": "USDT"}


class WalletService:
    def __init__(self, chain: ChainClient, signer: TransactionSigner, reader: PoolStateReader,
                 price_client: PriceClient):
        self.chain = chain
        self.signer = signer
        self.reader = reader
        self.price_client = price_client

    def _require_address(self, address: Optional[str] = None) -> str:
        address = address or self.signer.address
        if not address:
            raise KaiaMCPError("No address provided and wallet not initialized")
        return Web3.to_checksum_address(address)

    def _require_signer(self):
        if not self.signer.can_sign:
            raise ReadOnlyModeError(
                "This operation requires transaction mode. Provide a private key to enable transactions."
            )

    async def get_wallet_info(self, address: Optional[str] = None) -> Dict[str, Any]:
        """Native balance plus every known token balance with a USD value."""
        address = self._require_address(address)
        loop = asyncio.get_event_loop()
        tokens = [t for t in Token if not t.is_native]

        native_balance, prices, *token_balances = await asyncio.gather(
            loop.run_in_executor(None, self.chain.get_balance, address),
            self.price_client.get_price_map(),
            *[loop.run_in_executor(None, self.reader.get_balance, t.address, address) for t in tokens],
            return_exceptions=True,
        )
        if isinstance(native_balance, Exception):
            raise native_balance
        if isinstance(prices, Exception):
            raise prices

        native_amount = format_units(int(native_balance), Token.KAIA.decimals)
        kaia_price = prices.get("KAIA", 0.0)

        balances = []
        for token, balance in zip(tokens, token_balances):
            if isinstance(balance, Exception):
                logger.warning(f"Failed to read {token.symbol} balance: {balance}")
                continue
            amount = format_units(int(balance), token.decimals)
            price = prices.get(PRICE_ALIASES.get(token.name, token.name), 0.0)
            value_usd = float(amount) * price
            if value_usd > MIN_DISPLAY_USD:
                balances.append({
                    "symbol": token.symbol,
                    "address": token.address,
                    "balance": format_amount(amount),
                    "balanceUSD": round(value_usd, 2),
                })

        return {
            "address": address,
            "nativeBalance": format_amount(native_amount),
            "nativeBalanceUSD": round(float(native_amount) * kaia_price, 2),
            "tokens": balances,
        }

    def _send_native(self, to: str, amount_raw: int, amount: str) -> str:
        balance = int(self.chain.get_balance(self.signer.address))
        if balance < amount_raw:
            raise InsufficientBalanceError("KAIA", amount, format_amount(format_units(balance, 18)))
        return self.signer.send_native(to, amount_raw)

    async def send_native(self, to: str, amount: Union[str, Decimal]) -> str:
        """Transfer native KAIA; returns the transaction hash."""
        self._require_signer()
        to = Web3.to_checksum_address(to)
        amount_raw = parse_units(amount, Token.KAIA.decimals)
        if amount_raw <= 0:
            raise InvalidAmountError(f"Amount must be positive: {amount}")
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._send_native, to, amount_raw, str(amount))

    def _send_erc20(self, token: Token, to: str, amount_raw: int, amount: str) -> str:
        balance = self.reader.get_balance(token.address, self.signer.address)
        if balance < amount_raw:
            raise InsufficientBalanceError(
                token.symbol, amount, format_amount(format_units(balance, token.decimals))
            )
        return self.signer.send_contract_transaction(
            token.address, ERC20_ABI, "transfer", (to, amount_raw), default_gas=100000
        )

    async def send_erc20(self, symbol: str, to: str, amount: Union[str, Decimal]) -> str:
        """Transfer a known ERC-20 token by symbol; returns the transaction hash."""
        self._require_signer()
        token = token_by_symbol(symbol)
        if token is None or token.is_native:
            raise InvalidTokenError(f"Token {symbol} not supported")
        to = Web3.to_checksum_address(to)
        amount_raw = parse_units(amount, token.decimals)
        if amount_raw <= 0:
            raise InvalidAmountError(f"Amount must be positive: {amount}")
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._send_erc20, token, to, amount_raw, str(amount))
