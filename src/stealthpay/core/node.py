"""
Ledger interface and EthereumNode, a JSON-RPC client for EVM nodes.

Every component talks to the chain through the narrow ``Ledger`` protocol, so
tests and integrators can substitute any backend (a local dev chain, a mock,
a third-party provider) without touching the protocol logic.

Docs: https://ethereum.org/en/developers/docs/apis/json-rpc/
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from stealthpay.core.address import validate_address
from stealthpay.core.contract import decode_uint, encode_call
from stealthpay.core.models import TransactionReceipt

logger = logging.getLogger("stealthpay.node")

# Gas for a plain value transfer
TRANSFER_GAS = 21_000


class NodeError(Exception):
    """Raised when the node rejects a request. Revert reasons are kept verbatim."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


@runtime_checkable
class TransactionSigner(Protocol):
    """Anything that holds a key and can sign a transaction dict."""

    address: str

    def sign_transaction(self, tx: dict[str, Any]) -> bytes: ...


@runtime_checkable
class Ledger(Protocol):
    """The chain operations the stealth payment core depends on."""

    def get_chain_id(self) -> int: ...

    def get_block_number(self) -> int: ...

    def get_balance(self, address: str) -> int: ...

    def get_token_balance(self, token: str, owner: str) -> int: ...

    def get_gas_price(self) -> int: ...

    def call(self, to: str, data: bytes) -> bytes: ...

    def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None] | None = None,
    ) -> list[dict[str, Any]]: ...

    def submit_transaction(self, signer: TransactionSigner, tx: dict[str, Any]) -> str: ...

    def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None: ...


class EthereumNode:
    """
    Synchronous JSON-RPC client for an Ethereum-compatible node.

    Usage:
        node = EthereumNode("http://localhost:8545")
        node = EthereumNode("https://rpc.example.org", headers={"Authorization": "Bearer ..."})
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        base_headers: dict[str, str] = {"Content-Type": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = client or httpx.Client(headers=base_headers, timeout=timeout)
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Chain info
    # ------------------------------------------------------------------

    def get_chain_id(self) -> int:
        """Return the chain id reported by the node."""
        return int(self._rpc("eth_chainId", []), 16)

    def get_block_number(self) -> int:
        """Return the latest block number."""
        return int(self._rpc("eth_blockNumber", []), 16)

    def get_gas_price(self) -> int:
        """Return the node's suggested legacy gas price in wei."""
        return int(self._rpc("eth_gasPrice", []), 16)

    # ------------------------------------------------------------------
    # Balances & calls
    # ------------------------------------------------------------------

    def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        address = validate_address(address)
        return int(self._rpc("eth_getBalance", [address, "latest"]), 16)

    def get_token_balance(self, token: str, owner: str) -> int:
        """ERC-20 balance via ``balanceOf``."""
        token = validate_address(token, "token")
        owner = validate_address(owner, "owner")
        return decode_uint(self.call(token, encode_call("balanceOf", owner)))

    def get_transaction_count(self, address: str) -> int:
        """Pending nonce for an address."""
        return int(self._rpc("eth_getTransactionCount", [address, "pending"]), 16)

    def estimate_gas(self, tx: dict[str, Any]) -> int:
        return int(self._rpc("eth_estimateGas", [_to_rpc_tx(tx)]), 16)

    def call(self, to: str, data: bytes) -> bytes:
        """Execute a read-only call against the latest block."""
        result = self._rpc("eth_call", [{"to": to, "data": "0x" + bytes(data).hex()}, "latest"])
        return bytes.fromhex(result[2:])

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch event logs emitted by ``address`` in an inclusive block range.

        Args:
            address: emitting contract
            from_block: first block (inclusive)
            to_block: last block (inclusive)
            topics: optional topic filter, e.g. [event_topic]

        Returns:
            list of raw log dicts as returned by the node
        """
        params: dict[str, Any] = {
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            params["topics"] = topics
        logs = self._rpc("eth_getLogs", [params])
        if not isinstance(logs, list):
            raise NodeError(f"Unexpected eth_getLogs result: {logs!r}")
        return logs

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def submit_transaction(self, signer: TransactionSigner, tx: dict[str, Any]) -> str:
        """
        Fill in nonce, chain id, gas and gas price, sign and broadcast.

        Never retried: a failure here is surfaced to the caller, who decides
        whether resubmitting is safe.

        Args:
            signer: account that signs (and pays for) the transaction
            tx: partial transaction dict with at least ``to``; ``data`` as bytes or hex

        Returns:
            str: transaction hash
        """
        full_tx = dict(tx)
        full_tx["from"] = signer.address
        if isinstance(full_tx.get("data"), (bytes, bytearray)):
            full_tx["data"] = "0x" + bytes(full_tx["data"]).hex()
        full_tx.setdefault("value", 0)
        full_tx.setdefault("chainId", self.get_chain_id())
        full_tx.setdefault("nonce", self.get_transaction_count(signer.address))
        if "gasPrice" not in full_tx and "maxFeePerGas" not in full_tx:
            full_tx["gasPrice"] = self.get_gas_price()
        if "gas" not in full_tx:
            full_tx["gas"] = self.estimate_gas(full_tx)

        raw = signer.sign_transaction(full_tx)
        tx_hash = str(self._rpc("eth_sendRawTransaction", ["0x" + bytes(raw).hex()]))
        logger.info(f"Submitted transaction {tx_hash} from {signer.address}")
        return tx_hash

    def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Return the receipt, or None while the transaction is pending."""
        data = self._rpc("eth_getTransactionReceipt", [tx_hash])
        if data is None:
            return None
        return TransactionReceipt(
            tx_hash=data["transactionHash"],
            block_number=int(data["blockNumber"], 16),
            status=int(data.get("status", "0x1"), 16),
            gas_used=int(data.get("gasUsed", "0x0"), 16),
            effective_gas_price=int(data.get("effectiveGasPrice", "0x0"), 16),
            logs=data.get("logs", []),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _rpc(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise NodeError(f"RPC transport error calling {method}: {e}") from e
        if response.status_code != 200:
            raise NodeError(f"RPC error {response.status_code} for {method}: {response.text}")
        try:
            body = response.json()
        except ValueError as e:
            raise NodeError(f"RPC returned a non-JSON body for {method}: {e}") from e
        if not isinstance(body, dict):
            raise NodeError(f"Unexpected RPC response for {method}: {body!r}")
        if body.get("error"):
            err = body["error"]
            raise NodeError(err.get("message", str(err)), code=err.get("code"), data=err.get("data"))
        return body.get("result")

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> EthereumNode:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


def _to_rpc_tx(tx: dict[str, Any]) -> dict[str, Any]:
    """Hex-encode integer fields for JSON-RPC."""
    out: dict[str, Any] = {}
    for key, value in tx.items():
        if key in ("nonce", "chainId"):
            continue
        if isinstance(value, int) and not isinstance(value, bool):
            out[key] = hex(value)
        elif isinstance(value, (bytes, bytearray)):
            out[key] = "0x" + bytes(value).hex()
        else:
            out[key] = value
    return out
