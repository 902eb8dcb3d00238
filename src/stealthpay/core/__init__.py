"""core module init"""
from stealthpay.core.address import (
    ETH_ADDRESS,
    ZERO_ADDRESS,
    AddressFormatError,
    is_native_token,
    is_valid_address,
    normalize_token,
    validate_address,
)
from stealthpay.core.config import (
    SUPPORTED_CHAIN_IDS,
    ChainConfig,
    ConfigError,
    default_chain_config,
    resolve_chain_config,
)
from stealthpay.core.models import Announcement, PendingTransaction, ScanResult, TransactionReceipt
from stealthpay.core.node import EthereumNode, Ledger, NodeError, TransactionSigner
from stealthpay.core.wallet import Wallet, WalletError

__all__ = [
    "AddressFormatError",
    "Announcement",
    "ChainConfig",
    "ConfigError",
    "ETH_ADDRESS",
    "EthereumNode",
    "Ledger",
    "NodeError",
    "PendingTransaction",
    "SUPPORTED_CHAIN_IDS",
    "ScanResult",
    "TransactionReceipt",
    "TransactionSigner",
    "Wallet",
    "WalletError",
    "ZERO_ADDRESS",
    "default_chain_config",
    "is_native_token",
    "is_valid_address",
    "normalize_token",
    "resolve_chain_config",
    "validate_address",
]
