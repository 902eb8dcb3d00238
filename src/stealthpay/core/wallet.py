"""
Wallet: private key management and signing.

A Wallet is the signing capability every flow depends on: key derivation needs
``sign_message``, transaction submission needs ``sign_transaction``. Private
keys never leave this object; callers only ever see addresses and signatures.
"""

from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import ValidationError

from stealthpay.core.address import validate_address

DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"


class WalletError(Exception):
    pass


class Wallet:
    """
    Ethereum wallet — holds a private key and signs messages and transactions.

    Usage:
        wallet = Wallet.from_private_key("0x...")
        wallet = Wallet.from_mnemonic("word1 word2 ...")
        wallet = Wallet.create()                       # fresh random key
        wallet = Wallet.read_only("0x...")             # no signing, query only
    """

    def __init__(self, address: str, _account: Any | None = None, read_only: bool = False) -> None:
        self.address = address
        self._account = _account
        self.read_only = read_only

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_private_key(cls, private_key: str | bytes | int) -> Wallet:
        """Wallet from a raw private key (0x hex, 32 bytes or int)."""
        if isinstance(private_key, int) and not isinstance(private_key, bool):
            private_key = "0x" + private_key.to_bytes(32, "big").hex()
        try:
            account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise WalletError(f"Invalid private key: {e}") from None
        return cls(address=account.address, _account=account)

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        passphrase: str = "",
        account_path: str = DEFAULT_DERIVATION_PATH,
    ) -> Wallet:
        """Wallet from a BIP39 mnemonic, derived along ``account_path``."""
        Account.enable_unaudited_hdwallet_features()
        try:
            account = Account.from_mnemonic(mnemonic, passphrase=passphrase, account_path=account_path)
        except (ValueError, ValidationError) as e:
            raise WalletError(f"Invalid mnemonic: {e}") from None
        return cls(address=account.address, _account=account)

    @classmethod
    def create(cls) -> Wallet:
        """Wallet with a fresh random key."""
        account = Account.create()
        return cls(address=account.address, _account=account)

    @classmethod
    def read_only(cls, address: str) -> Wallet:
        """
        Read-only wallet -- can query balances and receive funds, but cannot sign.
        """
        return cls(address=validate_address(address), read_only=True)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_message(self, message: str | bytes) -> bytes:
        """
        EIP-191 personal-sign a text message (or raw bytes).

        Signatures are deterministic (RFC 6979), which key derivation relies on.
        """
        account = self._require_account()
        signable = encode_defunct(text=message) if isinstance(message, str) else encode_defunct(primitive=message)
        return bytes(account.sign_message(signable).signature)

    def sign_transaction(self, tx: dict[str, Any]) -> bytes:
        """
        Sign a fully populated transaction dict.

        Returns:
            bytes: the raw signed transaction, ready for broadcast
        """
        account = self._require_account()
        return bytes(account.sign_transaction(tx).raw_transaction)

    def _require_account(self) -> Any:
        if self.read_only or self._account is None:
            raise WalletError("This wallet is read-only and cannot sign.")
        return self._account

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        mode = "read-only" if self.read_only else "local"
        return f"Wallet(address={self.address!r}, mode={mode!r})"
