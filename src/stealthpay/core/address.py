"""
Ethereum address utilities: validation, checksumming, native-asset sentinel.

Address format: 0x + 20 bytes hex. Mixed-case addresses must carry a valid
EIP-55 checksum; all-lowercase and all-uppercase forms are accepted and
normalised to the checksummed form.

Reference: https://eips.ethereum.org/EIPS/eip-55
"""

from __future__ import annotations

from typing import Any

from eth_utils import is_address, is_checksum_address, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Sentinel used by the stealth contract (and most EVM tooling) for the native asset
ETH_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


class AddressFormatError(ValueError):
    """Raised for malformed chain addresses. Names the offending field and value."""

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid address provided for {field}. Got '{value}'")


def validate_address(address: Any, field: str = "address") -> str:
    """
    Validate an address and return its checksummed form.

    Args:
        address: candidate address (must be a 0x-prefixed hex string)
        field: parameter name reported in the error

    Returns:
        str: EIP-55 checksummed address

    Raises:
        AddressFormatError: if the value is not a well-formed address
    """
    if not isinstance(address, str) or not is_address(address):
        raise AddressFormatError(field, address)
    body = address[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(address):
        raise AddressFormatError(field, address)
    return to_checksum_address(address)


def is_valid_address(address: Any) -> bool:
    """Check an address without raising."""
    try:
        validate_address(address)
        return True
    except AddressFormatError:
        return False


def is_native_token(token: Any) -> bool:
    """True for the native-asset sentinel (``"ETH"`` or the 0xEeee... address)."""
    if not isinstance(token, str):
        return False
    return token.upper() == "ETH" or token.lower() == ETH_ADDRESS.lower()


def normalize_token(token: Any, field: str = "token") -> str:
    """
    Resolve a token argument to a checksummed address.

    ``"ETH"`` maps to the native-asset sentinel address.
    """
    if isinstance(token, str) and token.upper() == "ETH":
        return ETH_ADDRESS
    return validate_address(token, field)


def same_address(a: str, b: str) -> bool:
    """Case-insensitive address equality."""
    return a.lower() == b.lower()
