"""
stealthpay: Python client core for stealth-address payments on EVM chains.

Usage:
    from stealthpay import EthereumNode, StealthClient, Wallet

    client = StealthClient(EthereumNode("http://localhost:8545"), 1)
    keys = client.derive_keys(Wallet.from_private_key("0x..."))
"""

from stealthpay.core.address import AddressFormatError, ETH_ADDRESS
from stealthpay.core.config import ChainConfig, ConfigError, resolve_chain_config
from stealthpay.core.models import Announcement, PendingTransaction, ScanResult, TransactionReceipt
from stealthpay.core.node import EthereumNode, Ledger, NodeError
from stealthpay.core.wallet import Wallet, WalletError
from stealthpay.crypto.keys import DerivedKeys, KeyPair, ReceiverPublicKeys, derive_keys
from stealthpay.crypto.stealth import compute_stealth_address, compute_stealth_private_key
from stealthpay.crypto.withdrawal import (
    DataFormatError,
    SignatureError,
    WithdrawalAuthorization,
    build_and_sign,
)
from stealthpay.scanner.scanner import ScanError, ScanSettings
from stealthpay.scanner.sources import AnnouncementSourceError
from stealthpay.payments.client import InsufficientBalanceError, SendResult, StealthClient

__version__ = "0.1.0"
__all__ = [
    "StealthClient",
    "SendResult",
    "EthereumNode",
    "Ledger",
    "Wallet",
    "ChainConfig",
    "ScanSettings",
    "resolve_chain_config",
    "Announcement",
    "ScanResult",
    "PendingTransaction",
    "TransactionReceipt",
    "KeyPair",
    "DerivedKeys",
    "ReceiverPublicKeys",
    "WithdrawalAuthorization",
    "derive_keys",
    "compute_stealth_address",
    "compute_stealth_private_key",
    "build_and_sign",
    "ETH_ADDRESS",
    # errors
    "AddressFormatError",
    "AnnouncementSourceError",
    "ConfigError",
    "DataFormatError",
    "InsufficientBalanceError",
    "NodeError",
    "ScanError",
    "SignatureError",
    "WalletError",
]
