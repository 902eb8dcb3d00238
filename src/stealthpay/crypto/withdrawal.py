"""
Withdrawal authorisation for relayed ("on behalf") withdrawals.

The stealth key holder signs a digest that binds every parameter of the
withdrawal, and a relayer (who pays gas) submits it. The contract recovers the
signer and checks it against the stealth address, so the signature is only
valid for the exact tuple it was produced over:

    digest = keccak256(abi.encode(
        uint256 chainId,
        address contract,
        address stealthAddress,
        address destination,
        address token,
        address sponsor,
        uint256 sponsorFee,
        address hook,
        bytes   hookData,
    ))
    signature = personal_sign(digest)       # EIP-191, recoverable (v, r, s)

chainId and contract stop cross-chain / cross-deployment replay; destination,
token, sponsor and sponsorFee stop a relayer from redirecting funds or raising
its own fee.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from stealthpay.core.address import ZERO_ADDRESS, validate_address
from stealthpay.core.config import ConfigError
from stealthpay.crypto.secp256k1 import (
    SECP256K1_N,
    address_from_point,
    parse_private_key,
    scalar_mult_base,
    scalar_to_hex,
)

DIGEST_TYPES = [
    "uint256", "address", "address", "address", "address",
    "address", "uint256", "address", "bytes",
]

_HEX_DATA = re.compile(r"0x([0-9a-fA-F]{2})*")
_HEX_32 = re.compile(r"0x[0-9a-fA-F]{64}")


class DataFormatError(ValueError):
    """Raised for malformed hex payloads or numeric strings."""
    pass


class SignatureError(ValueError):
    """Raised for malformed signature components."""
    pass


@dataclass(frozen=True)
class WithdrawalAuthorization:
    """A recoverable ECDSA signature split into contract call arguments."""
    v: int
    r: str
    s: str

    def __post_init__(self) -> None:
        validate_signature_components(self.v, self.r, self.s)

    def as_tuple(self) -> tuple[int, str, str]:
        return self.v, self.r, self.s


# ==============================================================================
# Validation helpers
# ==============================================================================


def validate_chain_id(chain_id: Any) -> int:
    """Chain ids must be real integers; strings such as '4' are rejected."""
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        raise ConfigError(f"Invalid chain id provided in chain config. Got '{chain_id}'")
    return chain_id


def parse_hook_data(hook_data: str | None) -> bytes:
    """
    Decode the optional hook payload.

    Raises:
        DataFormatError: if not None and not 0x-prefixed, even-length hex.
    """
    if hook_data is None:
        return b""
    if not isinstance(hook_data, str) or not _HEX_DATA.fullmatch(hook_data):
        raise DataFormatError("Data string must be None or in hex format with 0x prefix")
    return bytes.fromhex(hook_data[2:])


def parse_amount(value: Any, field: str = "amount") -> int:
    """
    Accept a non-negative int or decimal string (e.g. ``'2500'``).

    Raises:
        DataFormatError: for negatives, floats, bools or non-decimal strings.
    """
    if isinstance(value, bool):
        raise DataFormatError(f"Invalid {field}. Got '{value}'")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.isascii() and value.isdecimal():
        amount = int(value)
    else:
        raise DataFormatError(f"Invalid {field}. Got '{value}'")
    if amount < 0 or amount >= 2**256:
        raise DataFormatError(f"Invalid {field}. Got '{value}'")
    return amount


def validate_signature_components(v: Any, r: Any, s: Any) -> None:
    """
    Check v ∈ {27, 28} and r, s are 0x-prefixed 32-byte hex in [1, N-1].

    Raises:
        SignatureError: naming the first malformed component.
    """
    if isinstance(v, bool) or v not in (27, 28):
        raise SignatureError(f"Invalid signature component v. Got '{v}'")
    for name, value in (("r", r), ("s", s)):
        if not isinstance(value, str) or not _HEX_32.fullmatch(value):
            raise SignatureError(f"Invalid signature component {name}. Got '{value}'")
        scalar = int(value, 16)
        if scalar <= 0 or scalar >= SECP256K1_N:
            raise SignatureError(f"Signature component {name} out of range")


# ==============================================================================
# Digest & signing
# ==============================================================================


def build_digest(
    chain_id: int,
    contract_address: str,
    stealth_address: str,
    destination: str,
    token_address: str,
    sponsor: str,
    sponsor_fee: int | str,
    hook: str | None = None,
    hook_data: str | None = None,
) -> bytes:
    """
    Build the 32-byte digest binding every withdrawal parameter.

    Raises:
        ConfigError: chain_id is not an integer.
        AddressFormatError: any address is malformed (names the field).
        DataFormatError: malformed hook_data or sponsor_fee.
    """
    chain_id = validate_chain_id(chain_id)
    contract_address = validate_address(contract_address, "contract_address")
    stealth_address = validate_address(stealth_address, "stealth_address")
    destination = validate_address(destination, "destination")
    token_address = validate_address(token_address, "token_address")
    sponsor = validate_address(sponsor, "sponsor")
    hook = ZERO_ADDRESS if hook is None else validate_address(hook, "hook")
    fee = parse_amount(sponsor_fee, "sponsor_fee")
    data = parse_hook_data(hook_data)

    encoded = encode(
        DIGEST_TYPES,
        [
            chain_id, contract_address, stealth_address, destination,
            token_address, sponsor, fee, hook, data,
        ],
    )
    return keccak(encoded)


def sign_withdrawal(stealth_private_key: int | str, digest: bytes) -> WithdrawalAuthorization:
    """
    Sign a withdrawal digest with the stealth private key (EIP-191 prefixed).

    Returns:
        WithdrawalAuthorization(v, r, s) ready for the contract call.
    """
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != 32:
        raise DataFormatError("Withdrawal digest must be 32 bytes")
    key = parse_private_key(stealth_private_key)
    signed = Account.sign_message(encode_defunct(primitive=bytes(digest)), private_key=scalar_to_hex(key))
    return WithdrawalAuthorization(
        v=int(signed.v),
        r="0x" + int(signed.r).to_bytes(32, "big").hex(),
        s="0x" + int(signed.s).to_bytes(32, "big").hex(),
    )


def build_and_sign(
    stealth_private_key: int | str,
    chain_id: int,
    contract_address: str,
    destination: str,
    token_address: str,
    sponsor: str,
    sponsor_fee: int | str,
    hook: str | None = None,
    hook_data: str | None = None,
) -> WithdrawalAuthorization:
    """
    Build the digest for a relayed withdrawal and sign it in one step.

    The stealth address is derived from the private key, so it cannot
    disagree with the signer the contract will recover.
    """
    key = parse_private_key(stealth_private_key)
    stealth_address = address_from_point(scalar_mult_base(key))
    digest = build_digest(
        chain_id, contract_address, stealth_address, destination,
        token_address, sponsor, sponsor_fee, hook, hook_data,
    )
    return sign_withdrawal(key, digest)
