"""
Web3 read client and local-key transaction signer for Kaia.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode
from eth_account import Account
from web3 import Web3
from web3.contract import Contract

from .abis import MULTICALL_ABI
from .config import GAS_MULTIPLIER
from .errors import ReadOnlyModeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractCall:
    """One read call to batch through multicall."""
    address: str
    abi: List[Dict[str, Any]]
    function_name: str
    args: Sequence[Any] = field(default_factory=tuple)


def _abi_type(param: Dict[str, Any]) -> str:
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param["components"])
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def output_types(abi: List[Dict[str, Any]], function_name: str) -> List[str]:
    """ABI output type strings for a function, for eth_abi decoding."""
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == function_name:
            return [_abi_type(o) for o in entry.get("outputs", [])]
    raise KeyError(f"Function {function_name} not found in ABI")


class ChainClient:
    """Read-side chain access: single calls, batched calls and balances."""

    def __init__(self, web3: Web3, multicall_address: str):
        self.web3 = web3
        self.multicall_address = Web3.to_checksum_address(multicall_address)

    def contract(self, address: str, abi: List[Dict[str, Any]]) -> Contract:
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def read_contract(self, address: str, abi: List[Dict[str, Any]], function_name: str,
                      args: Sequence[Any] = ()) -> Any:
        contract = self.contract(address, abi)
        return getattr(contract.functions, function_name)(*args).call()

    def multicall(self, calls: Sequence[ContractCall]) -> List[Any]:
        """Execute all calls in one Multicall3 aggregate, so they observe one block.

        Single-output functions decode to their value; multi-output functions
        decode to a tuple.
        """
        encoded = []
        for call in calls:
            contract = self.contract(call.address, call.abi)
            encoded.append((contract.address, contract.encode_abi(call.function_name, args=list(call.args))))

        multicall = self.contract(self.multicall_address, MULTICALL_ABI)
        _, return_data = multicall.functions.aggregate(encoded).call()

        results = []
        for call, data in zip(calls, return_data):
            decoded = decode(output_types(call.abi, call.function_name), data)
            results.append(decoded[0] if len(decoded) == 1 else decoded)
        return results

    def get_balance(self, address: str) -> int:
        return self.web3.eth.get_balance(Web3.to_checksum_address(address))

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Any:
        return self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)


class TransactionSigner:
    """Signs and broadcasts transactions with a single local private key."""

    def __init__(self, web3: Web3, private_key: Optional[str] = None):
        self.web3 = web3
        self.account = Account.from_key(private_key) if private_key else None

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    @property
    def can_sign(self) -> bool:
        return self.account is not None

    def _require_account(self):
        if self.account is None:
            raise ReadOnlyModeError(
                "This operation requires transaction mode. Provide a private key to enable transactions."
            )
        return self.account

    def _sign_and_send(self, tx: Dict[str, Any], default_gas: int) -> str:
        # Estimate gas with buffer
        try:
            estimated_gas = self.web3.eth.estimate_gas(tx)
            tx["gas"] = estimated_gas + (estimated_gas // GAS_MULTIPLIER)
        except Exception as e:
            logger.warning(f"Gas estimation failed: {e}, using default {default_gas}")
            tx["gas"] = default_gas

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)

    def send_contract_transaction(self, address: str, abi: List[Dict[str, Any]], function_name: str,
                                  args: Sequence[Any] = (), value: int = 0,
                                  default_gas: int = 300000) -> str:
        """Build, sign and broadcast a contract call; returns the transaction hash."""
        account = self._require_account()
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        tx = getattr(contract.functions, function_name)(*args).build_transaction({
            "from": account.address,
            "value": value,
            "gas": default_gas,
            "gasPrice": self.web3.eth.gas_price,
            "nonce": self.web3.eth.get_transaction_count(account.address),
        })
        tx.pop("gas", None)
        logger.info(f"Submitting {function_name} to {address}")
        return self._sign_and_send(tx, default_gas)

    def send_native(self, to: str, amount_wei: int) -> str:
        """Transfer native KAIA; returns the transaction hash."""
        account = self._require_account()
        tx = {
            "from": account.address,
            "to": Web3.to_checksum_address(to),
            "value": amount_wei,
            "gasPrice": self.web3.eth.gas_price,
            "nonce": self.web3.eth.get_transaction_count(account.address),
            "chainId": self.web3.eth.chain_id,
        }
        logger.info(f"Sending {amount_wei} wei to {to}")
        return self._sign_and_send(tx, 21000)

