"""
StealthClient — the public surface for sending, scanning and withdrawing.

Ties the protocol pieces to one deployment (a ChainConfig) and one ledger:

    sender:    client.send(wallet, token, amount, receiver_keys)
                 → fresh stealth address, toll queried, balance checked,
                   sendEth / sendToken submitted with the announcement
    receiver:  client.scan(view_pub, view_priv, spend_pub)
                 → lazy ScanResults for the receiver's payments
               client.withdraw(stealth_key, token, destination)
                 → direct withdrawal signed by the stealth key
    relayer:   client.withdraw_on_behalf(relayer, stealth, destination, ...)
                 → relayed withdrawal, gas paid by the relayer

Nothing is cached between calls except the immutable ChainConfig and the
ledger handle. Transactions are submitted exactly once; contract reverts
propagate from the ledger unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from stealthpay.core.address import (
    is_native_token,
    normalize_token,
    validate_address,
)
from stealthpay.core.config import ChainConfig, ConfigError, resolve_chain_config
from stealthpay.core.contract import decode_stealth_keys, decode_uint, encode_call, split_public_key
from stealthpay.core.models import PendingTransaction, ScanResult
from stealthpay.core.node import TRANSFER_GAS, Ledger, TransactionSigner
from stealthpay.core.wallet import Wallet
from stealthpay.crypto import keys as key_derivation
from stealthpay.crypto import stealth, withdrawal
from stealthpay.crypto.keys import DerivedKeys, KeyPair, MessageSigner, ReceiverPublicKeys
from stealthpay.crypto.secp256k1 import parse_private_key
from stealthpay.crypto.withdrawal import WithdrawalAuthorization, parse_amount, validate_chain_id
from stealthpay.relayer.withdrawal_relayer import WithdrawalRelayer, WithdrawalRequest
from stealthpay.scanner.scanner import AnnouncementScanner, ScanIterator, ScanSettings
from stealthpay.scanner.sources import AnnouncementSource, source_for_config

logger = logging.getLogger("stealthpay.client")


class InsufficientBalanceError(Exception):
    """
    Raised before submission when the sender cannot cover a transfer.

    Attributes:
        required: amount needed, in the asset's smallest unit
        actual: balance held
    """

    def __init__(self, required: int, actual: int, message: str | None = None) -> None:
        self.required = required
        self.actual = actual
        super().__init__(
            message
            or f"Insufficient balance to complete transfer. Has {actual} tokens, "
            f"tried to send {required} tokens."
        )


@dataclass(frozen=True)
class SendResult:
    """
    Outcome of a send.

    Attributes:
        pending_transaction: the submitted sendEth / sendToken transaction
        stealth_key_pair: public-only key pair of the one-time stealth address
        ephemeral_public_key: R published in the announcement
        view_tag: one-byte tag published in the announcement
    """
    pending_transaction: PendingTransaction
    stealth_key_pair: KeyPair
    ephemeral_public_key: str
    view_tag: int

    @property
    def stealth_address(self) -> str:
        return self.stealth_key_pair.address


class StealthClient:
    """
    Stealth payment client for one deployment.

    Usage:
        client = StealthClient(EthereumNode("http://localhost:8545"), 1)
        keys = client.derive_keys(receiver_wallet)

        result = client.send(sender_wallet, "ETH", 10**17, keys.public_keys)

        for match in client.scan(view_pub, view_priv, spend_pub):
            stealth_key = client.stealth_private_key_for(match, spend_priv)
            client.withdraw(stealth_key, match.announcement.token_address, destination)
    """

    def __init__(
        self,
        ledger: Ledger,
        config: ChainConfig | Mapping[str, Any] | int | None,
        scan_settings: ScanSettings | None = None,
        announcement_source: AnnouncementSource | None = None,
    ) -> None:
        self.ledger = ledger
        self.chain_config = resolve_chain_config(config)
        self.source = announcement_source or source_for_config(ledger, self.chain_config)
        self.scanner = AnnouncementScanner(self.source, scan_settings)
        self.relayer = WithdrawalRelayer(ledger, self.chain_config)

    @property
    def contract_address(self) -> str:
        return self.chain_config.contract_address

    @property
    def chain_id(self) -> int:
        """Chain id from the config, falling back to the ledger's."""
        if self.chain_config.chain_id is not None:
            return self.chain_config.chain_id
        return validate_chain_id(self.ledger.get_chain_id())

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def derive_keys(signer: MessageSigner) -> DerivedKeys:
        """Re-derive a receiver's spending and viewing key pairs from their signer."""
        return key_derivation.derive_keys(signer)

    def lookup_receiver(self, address: str) -> ReceiverPublicKeys:
        """
        Read a receiver's published stealth keys from the key registry.

        Raises:
            ConfigError: no registry is configured for this chain
            ValueError: the address has not registered keys
        """
        address = validate_address(address, "receiver")
        registry = self._require_registry()
        result = self.ledger.call(registry, encode_call("stealthKeys", address))
        published = decode_stealth_keys(result)
        if published is None:
            raise ValueError(f"Address {address} has not registered stealth keys")
        spending_public_key, viewing_public_key = published
        return ReceiverPublicKeys(
            spending_public_key=spending_public_key,
            viewing_public_key=viewing_public_key,
        )

    def register_keys(
        self,
        signer: TransactionSigner,
        keys: DerivedKeys | ReceiverPublicKeys,
        gas_limit: int | None = None,
    ) -> PendingTransaction:
        """Publish a receiver's public keys to the key registry (only public halves leave)."""
        public_keys = keys.public_keys if isinstance(keys, DerivedKeys) else keys
        spending_prefix, spending_x = split_public_key(public_keys.spending_public_key)
        viewing_prefix, viewing_x = split_public_key(public_keys.viewing_public_key)
        tx: dict[str, Any] = {
            "to": self._require_registry(),
            "data": encode_call("setStealthKeys", spending_prefix, spending_x, viewing_prefix, viewing_x),
            "value": 0,
        }
        pending = self._submit(signer, tx, gas_limit)
        logger.info(f"Registered stealth keys for {signer.address} — tx: {pending.tx_hash}")
        return pending

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def get_toll(self) -> int:
        """Current anti-spam toll charged by the contract, in wei."""
        return decode_uint(self.ledger.call(self.contract_address, encode_call("toll")))

    def send(
        self,
        sender: TransactionSigner,
        token: str,
        amount: int | str,
        receiver: ReceiverPublicKeys | str,
        gas_limit: int | None = None,
    ) -> SendResult:
        """
        Send funds to a fresh stealth address of ``receiver`` and announce it.

        Args:
            sender: signer paying the amount, the toll and gas
            token: ERC-20 address, or "ETH" / the native sentinel address
            amount: amount in the asset's smallest unit (int or decimal string)
            receiver: the receiver's public keys, or an address registered in
                the key registry
            gas_limit: optional gas limit override

        Returns:
            SendResult with the pending transaction and the stealth key pair.

        Raises:
            AddressFormatError: malformed token or receiver address
            DataFormatError: malformed amount
            InsufficientBalanceError: the sender cannot cover the transfer;
                nothing was submitted
        """
        token_address = normalize_token(token, "token")
        value = parse_amount(amount, "amount")
        if value == 0:
            raise ValueError("Amount must be greater than zero")
        public_keys = self._resolve_receiver(receiver)

        target = stealth.compute_stealth_address(
            public_keys.viewing_public_key, public_keys.spending_public_key
        )
        toll = self.get_toll()
        native = is_native_token(token_address)

        # Advisory: the contract's own revert is authoritative
        if native:
            required = value + toll
            actual = self.ledger.get_balance(sender.address)
        else:
            required = value
            actual = self.ledger.get_token_balance(token_address, sender.address)
        if actual < required:
            if native:
                raise InsufficientBalanceError(
                    required=required,
                    actual=actual,
                    message=f"Insufficient balance to complete transfer. Has {actual} wei, "
                    f"tried to send {value} wei plus a toll of {toll} wei.",
                )
            raise InsufficientBalanceError(required=required, actual=actual)

        ephemeral = bytes.fromhex(target.ephemeral_public_key[2:])
        view_tag = bytes([target.view_tag])
        if native:
            data = encode_call("sendEth", target.stealth_address, toll, ephemeral, view_tag)
            tx_value = value + toll
        else:
            data = encode_call(
                "sendToken", target.stealth_address, token_address, value, ephemeral, view_tag
            )
            tx_value = toll
        tx: dict[str, Any] = {"to": self.contract_address, "data": data, "value": tx_value}

        pending = self._submit(sender, tx, gas_limit)
        logger.info(
            f"Sent {value} of {token_address} to stealth address {target.stealth_address} "
            f"(toll {toll}) — tx: {pending.tx_hash}"
        )
        return SendResult(
            pending_transaction=pending,
            stealth_key_pair=KeyPair(public_key=target.stealth_public_key),
            ephemeral_public_key=target.ephemeral_public_key,
            view_tag=target.view_tag,
        )

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan(
        self,
        viewing_public_key: str,
        viewing_private_key: int | str,
        spending_public_key: str,
        start_block: int | None = None,
        end_block: int | None = None,
        include_unmatched: bool = False,
    ) -> ScanIterator:
        """
        Lazily scan announcements for payments to the receiver.

        ``start_block`` defaults to the deployment's start block and
        ``end_block`` to the ledger's latest block. Resume an interrupted scan
        with ``start_block=iterator.last_scanned_block + 1``.
        """
        start = self.chain_config.start_block if start_block is None else start_block
        end = self.ledger.get_block_number() if end_block is None else end_block
        logger.debug(f"Scanning blocks {start}-{end} for stealth payments")
        return self.scanner.scan(
            viewing_public_key,
            viewing_private_key,
            spending_public_key,
            start,
            end,
            include_unmatched=include_unmatched,
        )

    # ------------------------------------------------------------------
    # Withdrawing
    # ------------------------------------------------------------------

    def withdraw(
        self,
        stealth_private_key: int | str,
        token: str,
        destination: str,
        gas_limit: int | None = None,
    ) -> PendingTransaction:
        """
        Withdraw from a stealth address with a transaction it signs itself.

        Tokens go through the contract's ``withdrawToken``; the native asset
        sits at the stealth address directly, so its whole balance minus the
        gas cost is swept to ``destination``.

        Raises:
            InsufficientBalanceError: a native sweep cannot cover its own gas
        """
        key = parse_private_key(stealth_private_key)
        destination = validate_address(destination, "destination")
        token_address = normalize_token(token, "token")
        stealth_wallet = Wallet.from_private_key(key)

        if is_native_token(token_address):
            gas = gas_limit or TRANSFER_GAS
            gas_price = self.ledger.get_gas_price()
            balance = self.ledger.get_balance(stealth_wallet.address)
            fee = gas * gas_price
            if balance <= fee:
                raise InsufficientBalanceError(
                    required=fee,
                    actual=balance,
                    message=f"Stealth address balance {balance} cannot cover withdrawal gas cost {fee}",
                )
            tx: dict[str, Any] = {
                "to": destination,
                "value": balance - fee,
                "data": b"",
                "gas": gas,
                "gasPrice": gas_price,
            }
            pending = self._submit(stealth_wallet, tx, None)
        else:
            tx = {
                "to": self.contract_address,
                "data": encode_call("withdrawToken", destination, token_address),
                "value": 0,
            }
            pending = self._submit(stealth_wallet, tx, gas_limit)

        logger.info(
            f"Withdrew {token_address} from {stealth_wallet.address} to {destination} "
            f"— tx: {pending.tx_hash}"
        )
        return pending

    def withdraw_on_behalf(
        self,
        relayer: TransactionSigner,
        stealth_address: str,
        destination: str,
        token: str,
        sponsor: str,
        sponsor_fee: int | str,
        v: int,
        r: str,
        s: str,
        hook: str | None = None,
        hook_data: str | None = None,
        gas_limit: int | None = None,
    ) -> PendingTransaction:
        """
        Submit a relayed token withdrawal, paying gas from ``relayer``.

        The signature is not checked locally; the contract recovers the signer
        and reverts if it is not ``stealth_address``.
        """
        request = WithdrawalRequest.create(
            stealth_address, destination, token, sponsor, sponsor_fee,
            v, r, s, hook=hook, hook_data=hook_data,
        )
        return self.relayer.relay(relayer, request, gas_limit=gas_limit)

    def sign_withdrawal(
        self,
        stealth_private_key: int | str,
        destination: str,
        token: str,
        sponsor: str,
        sponsor_fee: int | str,
        hook: str | None = None,
        hook_data: str | None = None,
    ) -> WithdrawalAuthorization:
        """``build_and_sign`` bound to this client's chain id and contract."""
        return withdrawal.build_and_sign(
            stealth_private_key, self.chain_id, self.contract_address,
            destination, token, sponsor, sponsor_fee, hook, hook_data,
        )

    # ------------------------------------------------------------------
    # Stateless helpers
    # ------------------------------------------------------------------

    @staticmethod
    def compute_stealth_private_key(
        viewing_private_key: int | str,
        ephemeral_public_key: str,
        spending_private_key: int | str,
    ) -> str:
        """Private key of a stealth address, as 0x hex."""
        return stealth.compute_stealth_private_key(
            viewing_private_key, ephemeral_public_key, spending_private_key
        )

    @staticmethod
    def stealth_private_key_for(result: ScanResult, spending_private_key: int | str) -> str:
        """Private key for a matched scan result, reusing its recovered shared secret."""
        if not result.matched or result.shared_secret is None:
            raise ValueError("Scan result is not a match")
        return stealth.stealth_private_key_from_secret(spending_private_key, result.shared_secret)

    @staticmethod
    def build_and_sign(
        stealth_private_key: int | str,
        chain_id: int,
        contract_address: str,
        destination: str,
        token: str,
        sponsor: str,
        sponsor_fee: int | str,
        hook: str | None = None,
        hook_data: str | None = None,
    ) -> WithdrawalAuthorization:
        """Build and sign a relayed-withdrawal authorisation."""
        return withdrawal.build_and_sign(
            stealth_private_key, chain_id, contract_address,
            destination, token, sponsor, sponsor_fee, hook, hook_data,
        )

    def close(self) -> None:
        """Close the announcement source's HTTP client, if it has one."""
        close = getattr(self.source, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> StealthClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_receiver(self, receiver: ReceiverPublicKeys | str) -> ReceiverPublicKeys:
        if isinstance(receiver, ReceiverPublicKeys):
            return receiver
        return self.lookup_receiver(receiver)

    def _require_registry(self) -> str:
        registry = self.chain_config.registry_address
        if registry is None:
            raise ConfigError("No stealth key registry configured for this chain")
        return registry

    def _submit(
        self,
        signer: TransactionSigner,
        tx: dict[str, Any],
        gas_limit: int | None,
    ) -> PendingTransaction:
        if gas_limit is not None:
            tx["gas"] = gas_limit
        tx_hash = self.ledger.submit_transaction(signer, tx)
        data = tx.get("data") or b""
        return PendingTransaction(
            tx_hash=tx_hash,
            from_address=signer.address,
            to=tx["to"],
            value=tx.get("value", 0),
            data="0x" + bytes(data).hex(),
            ledger=self.ledger,
        )
