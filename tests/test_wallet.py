"""Tests for wallet balances and transfers."""

import asyncio

import pytest

from fakes import OWNER, RECIPIENT, FakeChain, FakePoolReader, FakePriceClient, FakeSigner
from kaia_mcp.errors import InsufficientBalanceError, InvalidTokenError, ReadOnlyModeError
from kaia_mcp.tokens import Token
from kaia_mcp.wallet import WalletService


def make_wallet(signer=None, native=0, balances=None, prices=None):
    chain = FakeChain(balances={OWNER: native})
    reader = FakePoolReader(balances=balances, chain=chain)
    return WalletService(chain, signer or FakeSigner(), reader, FakePriceClient(prices))


class TestWalletInfo:
    def test_balances_with_usd_values(self):
        wallet = make_wallet(
            native=5 * 10**18,
            balances={Token.USDT.address: 12 * 10**6, Token.BORA.address: 1},
            prices={"KAIA": 0.2, "USDT": 1.0, "BORA": 0.1},
        )

        info = asyncio.run(wallet.get_wallet_info())

        assert info["address"] == OWNER
        assert info["nativeBalance"] == "5"
        assert info["nativeBalanceUSD"] == 1.0
        # dust BORA is left out
        assert info["tokens"] == [{
            "symbol": "USDT",
            "address": Token.USDT.address,
            "balance": "12",
            "balanceUSD": 12.0,
        }]

    def test_wkaia_priced_as_kaia(self):
        wallet = make_wallet(balances={Token.WKAIA.address: 10 * 10**18}, prices={"KAIA": 0.5})
        (token,) = asyncio.run(wallet.get_wallet_info())["tokens"]
        assert token["symbol"] == "WKAIA"
        assert token["balanceUSD"] == 5.0


class TestTransfers:
    def test_send_native(self):
        signer = FakeSigner()
        wallet = make_wallet(signer=signer, native=2 * 10**18)

        tx_hash = asyncio.run(wallet.send_native(RECIPIENT, "1.5"))

        assert tx_hash == "0xnative1"
        assert signer.sent[0]["value"] == 15 * 10**17

    def test_send_native_insufficient(self):
        wallet = make_wallet(native=10**18)
        with pytest.raises(InsufficientBalanceError) as exc:
            asyncio.run(wallet.send_native(RECIPIENT, "2"))
        assert "requested 2, available 1" in str(exc.value)

    def test_send_erc20_uses_token_decimals(self):
        signer = FakeSigner()
        wallet = make_wallet(signer=signer, balances={Token.USDT.address: 100 * 10**6})

        asyncio.run(wallet.send_erc20("usdt", RECIPIENT, "25"))

        (transfer,) = signer.sent
        assert transfer["to"] == Token.USDT.address
        assert transfer["function"] == "transfer"
        assert transfer["args"] == (RECIPIENT, 25 * 10**6)

    def test_send_erc20_insufficient(self):
        wallet = make_wallet(balances={Token.SIX.address: 10**18})
        with pytest.raises(InsufficientBalanceError):
            asyncio.run(wallet.send_erc20("SIX", RECIPIENT, "2"))

    def test_send_erc20_unknown_token(self):
        with pytest.raises(InvalidTokenError):
            asyncio.run(make_wallet().send_erc20("DOGE", RECIPIENT, "1"))
        with pytest.raises(InvalidTokenError):
            asyncio.run(make_wallet().send_erc20("KAIA", RECIPIENT, "1"))

    def test_readonly(self):
        wallet = make_wallet(signer=FakeSigner(address=None))
        with pytest.raises(ReadOnlyModeError):
            asyncio.run(wallet.send_native(RECIPIENT, "1"))
