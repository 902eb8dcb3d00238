"""
Integration tests for stealthpay.core.node (EthereumNode client).

These tests run against a live Ethereum mainnet JSON-RPC endpoint, taken from
STEALTHPAY_RPC_URL or a public default.

Run:  pytest tests/integration/ -v -m integration
"""

import os

import pytest

from stealthpay.core.config import DEFAULT_CONTRACT_ADDRESS, DEFAULT_REGISTRY_ADDRESS
from stealthpay.core.contract import decode_uint, encode_call
from stealthpay.core.node import EthereumNode

RPC_URL = os.environ.get("STEALTHPAY_RPC_URL", "https://ethereum-rpc.publicnode.com")
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"


@pytest.fixture(scope="module")
def node():
    """Node with generous timeout for public endpoints."""
    n = EthereumNode(RPC_URL, timeout=30.0)
    yield n
    n.close()


@pytest.mark.integration
class TestEthereumNode:
    """Test EthereumNode methods against mainnet."""

    def test_chain_id(self, node):
        assert node.get_chain_id() == 1

    def test_block_number(self, node):
        assert node.get_block_number() > 12_343_914

    def test_gas_price(self, node):
        assert node.get_gas_price() > 0

    def test_contract_toll(self, node):
        toll = decode_uint(node.call(DEFAULT_CONTRACT_ADDRESS, encode_call("toll")))
        assert toll >= 0

    def test_token_balance_of_contract(self, node):
        assert node.get_token_balance(DAI, DEFAULT_CONTRACT_ADDRESS) >= 0

    def test_registry_lookup_of_unregistered_address(self, node):
        # 0x...01 is a precompile and never registered keys
        result = node.call(
            DEFAULT_REGISTRY_ADDRESS,
            encode_call("stealthKeys", "0x0000000000000000000000000000000000000001"),
        )
        assert len(result) == 128
        assert int.from_bytes(result, "big") == 0
