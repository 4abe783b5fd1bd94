"""Tests for environment-driven settings."""

import pytest

from kaia_mcp.config import AgentMode, load_settings, normalize_private_key

RPC = "https://public-en.node.kaia.io"


def test_rpc_url_is_required():
    with pytest.raises(ValueError, match="KAIA_RPC_URL"):
        load_settings({})


def test_defaults_to_readonly():
    settings = load_settings({"KAIA_RPC_URL": RPC})
    assert settings.agent_mode == AgentMode.READONLY
    assert not settings.is_transaction_mode
    assert settings.network.chain_id == 8217
    assert settings.transport == "stdio"
    assert settings.price_timeout == 10.0


def test_transaction_mode_requires_key():
    with pytest.raises(ValueError, match="KAIA_PRIVATE_KEY"):
        load_settings({"KAIA_RPC_URL": RPC, "KAIA_AGENT_MODE": "transaction"})


def test_private_key_gets_prefix():
    settings = load_settings({
        "KAIA_RPC_URL": RPC,
        "KAIA_AGENT_MODE": "TRANSACTION",
        "KAIA_PRIVATE_KEY": "ab" * 32,
    })
    assert settings.is_transaction_mode
    assert settings.private_key == "0x" + "ab" * 32
    assert normalize_private_key(" 0x12 ") == "0x12"


@pytest.mark.parametrize("env", [
    {"KAIA_AGENT_MODE": "admin"},
    {"KAIA_NETWORK": "kairos"},
    {"TRANSPORT": "http"},
    {"PRICE_API_TIMEOUT": "soon"},
])
def test_invalid_values(env):
    with pytest.raises(ValueError):
        load_settings({"KAIA_RPC_URL": RPC, **env})


def test_overrides():
    settings = load_settings({
        "KAIA_RPC_URL": RPC,
        "MULTICALL_ADDRESS": "0x0000000000000000000000000000000000000001",
        "PRICE_API_TIMEOUT": "2.5",
        "TRANSPORT": "sse",
        "LOG_LEVEL": "debug",
    })
    assert settings.network.multicall_address.endswith("01")
    assert settings.price_timeout == 2.5
    assert settings.transport == "sse"
    assert settings.log_level == "DEBUG"
