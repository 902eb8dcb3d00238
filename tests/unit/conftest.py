"""
Shared fixtures for unit tests.

FakeLedger is an in-memory chain implementing the Ledger protocol: native
balances, ERC-20 tokens, the stealth payment contract and the key registry.
Contract calls are decoded with the real ABI codec, and relayed withdrawals
are checked by recovering the signer from the real digest, so the client is
exercised end to end without a node.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

import pytest
from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_checksum_address

from stealthpay.core.address import ETH_ADDRESS, ZERO_ADDRESS
from stealthpay.core.config import ChainConfig
from stealthpay.core.contract import ANNOUNCEMENT_DATA_TYPES, ANNOUNCEMENT_TOPIC, decode_call
from stealthpay.core.models import TransactionReceipt
from stealthpay.core.node import TRANSFER_GAS, NodeError
from stealthpay.core.wallet import Wallet
from stealthpay.crypto.withdrawal import build_digest
from stealthpay.payments.client import StealthClient

CHAIN_ID = 1337
CONTRACT = "0xFb2dc580Eed955B528407b4d36FfaFe3da685401"
REGISTRY = "0x31fe56609C65Cd0C510E7125f051D440424D38f3"
DAI = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
TOLL = 10**17
CONTRACT_CALL_GAS = 120_000

SENDER_KEY = "0x" + "11" * 32
RECEIVER_KEY = "0x" + "22" * 32
RELAYER_KEY = "0x" + "33" * 32


def _address_topic(address: str) -> str:
    return "0x" + (b"\x00" * 12 + bytes.fromhex(address[2:])).hex()


class FakeLedger:
    """In-memory ledger with the stealth contract, its registry and ERC-20 tokens."""

    def __init__(
        self,
        chain_id: int = CHAIN_ID,
        contract_address: str = CONTRACT,
        registry_address: str = REGISTRY,
        toll: int = TOLL,
        gas_price: int = 0,
    ) -> None:
        self.chain_id = chain_id
        self.contract_address = contract_address
        self.registry_address = registry_address
        self.toll = toll
        self.gas_price = gas_price
        self.block_number = 100
        self.eth: dict[str, int] = defaultdict(int)
        self.tokens: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.allowances: dict[tuple[str, str, str], int] = defaultdict(int)
        # (stealth address, token) -> amount held by the contract
        self.token_payments: dict[tuple[str, str], int] = defaultdict(int)
        self.registry: dict[str, tuple[int, int, int, int]] = {}
        self.logs: list[dict[str, Any]] = []
        self.receipts: dict[str, TransactionReceipt] = {}
        self.submitted: list[dict[str, Any]] = []
        self.hook_calls: list[tuple[str, bytes, int]] = []

    # -- setup helpers --------------------------------------------------

    def fund(self, address: str, wei: int) -> None:
        self.eth[to_checksum_address(address)] += wei

    def mint(self, token: str, owner: str, amount: int) -> None:
        self.tokens[to_checksum_address(token)][to_checksum_address(owner)] += amount

    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        key = (to_checksum_address(token), to_checksum_address(owner), to_checksum_address(spender))
        self.allowances[key] = amount

    def token_balance(self, token: str, owner: str) -> int:
        return self.tokens[to_checksum_address(token)][to_checksum_address(owner)]

    def held_for(self, stealth_address: str, token: str) -> int:
        return self.token_payments[(to_checksum_address(stealth_address), to_checksum_address(token))]

    # -- Ledger protocol --------------------------------------------------

    def get_chain_id(self) -> int:
        return self.chain_id

    def get_block_number(self) -> int:
        return self.block_number

    def get_balance(self, address: str) -> int:
        return self.eth[to_checksum_address(address)]

    def get_token_balance(self, token: str, owner: str) -> int:
        return self.token_balance(token, owner)

    def get_gas_price(self) -> int:
        return self.gas_price

    def call(self, to: str, data: bytes) -> bytes:
        to = to_checksum_address(to)
        name, args = decode_call(data)
        if to == self.contract_address and name == "toll":
            return encode(["uint256"], [self.toll])
        if to == self.registry_address and name == "stealthKeys":
            keys = self.registry.get(to_checksum_address(args[0]), (0, 0, 0, 0))
            return encode(["uint256"] * 4, list(keys))
        if name == "balanceOf":
            return encode(["uint256"], [self.token_balance(to, args[0])])
        if name == "allowance":
            return encode(["uint256"], [self.allowances[(to, to_checksum_address(args[0]), to_checksum_address(args[1]))]])
        raise NodeError("execution reverted")

    def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None] | None = None,
    ) -> list[dict[str, Any]]:
        out = []
        for log in self.logs:
            block = int(log["blockNumber"], 16)
            if log["address"] != to_checksum_address(address) or not from_block <= block <= to_block:
                continue
            if topics and topics[0] is not None and log["topics"][0] != topics[0]:
                continue
            out.append(dict(log))
        return out

    def submit_transaction(self, signer: Any, tx: dict[str, Any]) -> str:
        sender = to_checksum_address(signer.address)
        to = to_checksum_address(tx["to"])
        value = int(tx.get("value", 0))
        data = tx.get("data") or b""
        if isinstance(data, str):
            data = bytes.fromhex(data[2:])
        gas = int(tx.get("gas") or (CONTRACT_CALL_GAS if data else TRANSFER_GAS))
        gas_price = int(tx.get("gasPrice", self.gas_price))
        fee = gas * gas_price
        if self.eth[sender] < value + fee:
            raise NodeError("insufficient funds for gas * price + value")

        self.block_number += 1
        tx_hash = "0x" + keccak(text=f"{sender}:{len(self.submitted)}").hex()
        logs: list[dict[str, Any]] = []

        if data:
            try:
                self._execute(sender, to, value, bytes(data), tx_hash, logs)
            except NodeError:
                self.block_number -= 1
                raise
        self.eth[sender] -= value + fee
        if not data or to != self.contract_address:
            self.eth[to] += value

        self.submitted.append({**tx, "from": sender, "hash": tx_hash})
        self.logs.extend(logs)
        self.receipts[tx_hash] = TransactionReceipt(
            tx_hash=tx_hash,
            block_number=self.block_number,
            status=1,
            gas_used=gas,
            effective_gas_price=gas_price,
            logs=logs,
        )
        return tx_hash

    def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        return self.receipts.get(tx_hash)

    # -- contract execution ------------------------------------------------

    def _execute(
        self,
        sender: str,
        to: str,
        value: int,
        data: bytes,
        tx_hash: str,
        logs: list[dict[str, Any]],
    ) -> None:
        name, args = decode_call(data)
        if to == self.registry_address and name == "setStealthKeys":
            self.registry[sender] = tuple(int(a) for a in args)
            return
        if to != self.contract_address:
            raise NodeError("execution reverted")

        if name == "sendEth":
            receiver, toll_commitment, ephemeral, view_tag = args
            if value <= self.toll:
                raise NodeError("execution reverted: Must pay more than the toll")
            if toll_commitment != self.toll:
                raise NodeError("execution reverted: Invalid or outdated toll commitment")
            amount = value - self.toll
            self.eth[to_checksum_address(receiver)] += amount
            self._announce(receiver, amount, ETH_ADDRESS, ephemeral, view_tag, tx_hash, logs)
        elif name == "sendToken":
            receiver, token, amount, ephemeral, view_tag = args
            receiver, token = to_checksum_address(receiver), to_checksum_address(token)
            if value != self.toll:
                raise NodeError("execution reverted: Must pay the exact toll")
            if self.token_payments[(receiver, token)] != 0:
                raise NodeError("execution reverted: Cannot send more tokens to stealth address")
            self._transfer_from(token, sender, amount)
            self.token_payments[(receiver, token)] += amount
            self._announce(receiver, amount, token, ephemeral, view_tag, tx_hash, logs)
        elif name == "withdrawToken":
            acceptor, token = (to_checksum_address(a) for a in args)
            self._pay_out(sender, token, acceptor, ZERO_ADDRESS, 0)
        elif name == "withdrawTokenOnBehalf":
            stealth, acceptor, token, sponsor, fee, v, r, s = args
            self._check_signer(stealth, acceptor, token, sponsor, fee, None, None, v, r, s)
            self._pay_out(to_checksum_address(stealth), to_checksum_address(token),
                          to_checksum_address(acceptor), to_checksum_address(sponsor), fee)
        elif name == "withdrawTokenAndCallOnBehalf":
            stealth, acceptor, token, sponsor, fee, hook, hook_data, v, r, s = args
            self._check_signer(stealth, acceptor, token, sponsor, fee, hook, hook_data, v, r, s)
            amount = self._pay_out(to_checksum_address(stealth), to_checksum_address(token),
                                   to_checksum_address(acceptor), to_checksum_address(sponsor), fee)
            self.hook_calls.append((to_checksum_address(hook), bytes(hook_data), amount))
        else:
            raise NodeError("execution reverted")

    def _transfer_from(self, token: str, owner: str, amount: int) -> None:
        key = (token, owner, self.contract_address)
        if self.allowances[key] < amount:
            raise NodeError("execution reverted: ERC20: insufficient allowance")
        if self.tokens[token][owner] < amount:
            raise NodeError("execution reverted: ERC20: transfer amount exceeds balance")
        self.allowances[key] -= amount
        self.tokens[token][owner] -= amount

    def _pay_out(self, stealth: str, token: str, acceptor: str, sponsor: str, fee: int) -> int:
        amount = self.token_payments[(stealth, token)]
        if amount == 0 or amount <= fee:
            raise NodeError("execution reverted: No balance to withdraw or fee exceeds balance")
        self.token_payments[(stealth, token)] = 0
        self.tokens[token][acceptor] += amount - fee
        if fee:
            self.tokens[token][sponsor] += fee
        return amount - fee

    def _check_signer(self, stealth, acceptor, token, sponsor, fee, hook, hook_data, v, r, s) -> None:
        digest = build_digest(
            self.chain_id,
            self.contract_address,
            to_checksum_address(stealth),
            to_checksum_address(acceptor),
            to_checksum_address(token),
            to_checksum_address(sponsor),
            fee,
            to_checksum_address(hook) if hook is not None else None,
            "0x" + bytes(hook_data).hex() if hook_data is not None else None,
        )
        signer = Account.recover_message(
            encode_defunct(primitive=digest),
            vrs=(v, int.from_bytes(r, "big"), int.from_bytes(s, "big")),
        )
        if signer != to_checksum_address(stealth):
            raise NodeError("execution reverted: Invalid Signature")

    def _announce(self, receiver, amount, token, ephemeral, view_tag, tx_hash, logs) -> None:
        logs.append({
            "address": self.contract_address,
            "topics": [
                ANNOUNCEMENT_TOPIC,
                _address_topic(to_checksum_address(receiver)),
                _address_topic(to_checksum_address(token)),
            ],
            "data": "0x" + encode(ANNOUNCEMENT_DATA_TYPES, [amount, ephemeral, view_tag]).hex(),
            "blockNumber": hex(self.block_number),
            "logIndex": hex(len(logs)),
            "transactionHash": tx_hash,
        })


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def chain_config() -> ChainConfig:
    return ChainConfig(
        contract_address=CONTRACT,
        start_block=0,
        announcement_source=None,
        chain_id=CHAIN_ID,
        registry_address=REGISTRY,
    )


@pytest.fixture
def client(ledger, chain_config) -> StealthClient:
    return StealthClient(ledger, chain_config)


@pytest.fixture
def sender(ledger) -> Wallet:
    wallet = Wallet.from_private_key(SENDER_KEY)
    ledger.fund(wallet.address, 10 * 10**18)
    return wallet


@pytest.fixture
def receiver() -> Wallet:
    return Wallet.from_private_key(RECEIVER_KEY)


@pytest.fixture
def relayer(ledger) -> Wallet:
    wallet = Wallet.from_private_key(RELAYER_KEY)
    ledger.fund(wallet.address, 10**18)
    return wallet


@pytest.fixture
def receiver_keys(receiver):
    return StealthClient.derive_keys(receiver)
