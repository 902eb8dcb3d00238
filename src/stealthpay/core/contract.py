"""
ABI codec for the stealth payment contract, the key registry and ERC-20 tokens.

The contracts themselves are external collaborators: this module only encodes
call data in their fixed parameter order and decodes their return values and
events. It never talks to the network.

Contract surface:
    sendEth(address receiver, uint256 tollCommitment, bytes ephemeralPublicKey, bytes1 viewTag)  payable
    sendToken(address receiver, address token, uint256 amount, bytes ephemeralPublicKey, bytes1 viewTag)  payable
    withdrawToken(address acceptor, address token)
    withdrawTokenOnBehalf(address stealthAddr, address acceptor, address token,
                          address sponsor, uint256 sponsorFee, uint8 v, bytes32 r, bytes32 s)
    withdrawTokenAndCallOnBehalf(address stealthAddr, address acceptor, address token,
                                 address sponsor, uint256 sponsorFee, address hook, bytes data,
                                 uint8 v, bytes32 r, bytes32 s)
    toll() view returns (uint256)

    event Announcement(address indexed receiver, uint256 amount, address indexed token,
                       bytes ephemeralPublicKey, bytes1 viewTag)

Registry surface:
    stealthKeys(address registrant) view returns (uint256, uint256, uint256, uint256)
    setStealthKeys(uint256 spendingPrefix, uint256 spendingKey, uint256 viewingPrefix, uint256 viewingKey)
"""

from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from stealthpay.crypto.secp256k1 import compress_public_key

# name -> (canonical signature, argument types)
FUNCTIONS: dict[str, tuple[str, list[str]]] = {
    # stealth payment contract
    "sendEth": (
        "sendEth(address,uint256,bytes,bytes1)",
        ["address", "uint256", "bytes", "bytes1"],
    ),
    "sendToken": (
        "sendToken(address,address,uint256,bytes,bytes1)",
        ["address", "address", "uint256", "bytes", "bytes1"],
    ),
    "withdrawToken": (
        "withdrawToken(address,address)",
        ["address", "address"],
    ),
    "withdrawTokenOnBehalf": (
        "withdrawTokenOnBehalf(address,address,address,address,uint256,uint8,bytes32,bytes32)",
        ["address", "address", "address", "address", "uint256", "uint8", "bytes32", "bytes32"],
    ),
    "withdrawTokenAndCallOnBehalf": (
        "withdrawTokenAndCallOnBehalf(address,address,address,address,uint256,address,bytes,uint8,bytes32,bytes32)",
        ["address", "address", "address", "address", "uint256", "address", "bytes",
         "uint8", "bytes32", "bytes32"],
    ),
    "toll": ("toll()", []),
    # key registry
    "stealthKeys": ("stealthKeys(address)", ["address"]),
    "setStealthKeys": (
        "setStealthKeys(uint256,uint256,uint256,uint256)",
        ["uint256", "uint256", "uint256", "uint256"],
    ),
    # ERC-20
    "balanceOf": ("balanceOf(address)", ["address"]),
    "allowance": ("allowance(address,address)", ["address", "address"]),
    "approve": ("approve(address,uint256)", ["address", "uint256"]),
    "transfer": ("transfer(address,uint256)", ["address", "uint256"]),
}

ANNOUNCEMENT_EVENT = "Announcement(address,uint256,address,bytes,bytes1)"
ANNOUNCEMENT_TOPIC = "0x" + keccak(text=ANNOUNCEMENT_EVENT).hex()
ANNOUNCEMENT_DATA_TYPES = ["uint256", "bytes", "bytes1"]


def function_selector(name: str) -> bytes:
    """4-byte selector for a known function name."""
    signature, _ = FUNCTIONS[name]
    return keccak(text=signature)[:4]


_SELECTORS: dict[bytes, str] = {function_selector(name): name for name in FUNCTIONS}


def encode_call(name: str, *args: Any) -> bytes:
    """
    Encode call data for a known function.

    Raises:
        KeyError: unknown function name.
        ValueError: wrong number of arguments.
    """
    _, types = FUNCTIONS[name]
    if len(args) != len(types):
        raise ValueError(f"{name} expects {len(types)} arguments, got {len(args)}")
    return function_selector(name) + encode(types, list(args))


def decode_call(data: bytes) -> tuple[str, list[Any]]:
    """
    Decode call data produced by ``encode_call``.

    Returns:
        (function name, decoded arguments)

    Raises:
        ValueError: unknown selector or undecodable arguments.
    """
    data = bytes(data)
    name = _SELECTORS.get(data[:4])
    if name is None:
        raise ValueError(f"Unknown function selector: 0x{data[:4].hex()}")
    _, types = FUNCTIONS[name]
    try:
        values = decode(types, data[4:])
    except DecodingError as e:
        raise ValueError(f"Undecodable arguments for {name}: {e}") from e
    # eth-abi 6 decodes addresses lowercase
    return name, [
        to_checksum_address(value) if abi_type == "address" else value
        for abi_type, value in zip(types, values)
    ]


def decode_uint(result: bytes) -> int:
    """Decode a single uint256 return value."""
    (value,) = decode(["uint256"], bytes(result))
    return int(value)


# ------------------------------------------------------------------
# Announcement event
# ------------------------------------------------------------------


def _topic_to_address(topic: str | bytes) -> str:
    raw = bytes.fromhex(topic[2:]) if isinstance(topic, str) else bytes(topic)
    if len(raw) != 32:
        raise ValueError(f"Expected 32-byte topic, got {len(raw)}")
    return to_checksum_address(raw[12:])


def _hex_or_int(value: str | int) -> int:
    return int(value, 16) if isinstance(value, str) else int(value)


def decode_announcement_log(log: dict[str, Any]) -> dict[str, Any]:
    """
    Decode a raw ``eth_getLogs`` entry of the Announcement event into
    Announcement model fields.

    Raises:
        ValueError / KeyError: the log is not a well-formed Announcement.
    """
    topics: Sequence[str] = log["topics"]
    if len(topics) != 3 or topics[0].lower() != ANNOUNCEMENT_TOPIC:
        raise ValueError("Log is not an Announcement event")
    data = log["data"]
    raw = bytes.fromhex(data[2:]) if isinstance(data, str) else bytes(data)
    try:
        amount, ephemeral_public_key, view_tag = decode(ANNOUNCEMENT_DATA_TYPES, raw)
    except DecodingError as e:
        raise ValueError(f"Undecodable Announcement data: {e}") from e
    return {
        "stealth_address": _topic_to_address(topics[1]),
        "token_address": _topic_to_address(topics[2]),
        "amount": int(amount),
        "ephemeral_public_key": "0x" + bytes(ephemeral_public_key).hex(),
        "view_tag": bytes(view_tag),
        "block_number": _hex_or_int(log["blockNumber"]),
        "log_index": _hex_or_int(log.get("logIndex", 0)),
        "transaction_hash": log.get("transactionHash"),
    }


# ------------------------------------------------------------------
# Registry encoding
# ------------------------------------------------------------------


def split_public_key(public_key: str) -> tuple[int, int]:
    """Compressed key -> (prefix 2|3, x-coordinate) as stored by the registry."""
    raw = bytes.fromhex(compress_public_key(public_key)[2:])
    return raw[0], int.from_bytes(raw[1:], "big")


def join_public_key(prefix: int, x: int) -> str:
    """Inverse of ``split_public_key``; validates the resulting point."""
    if prefix not in (2, 3):
        raise ValueError(f"Invalid public key prefix: {prefix}")
    return compress_public_key("0x" + bytes([prefix]).hex() + x.to_bytes(32, "big").hex())


def decode_stealth_keys(result: bytes) -> tuple[str, str] | None:
    """
    Decode ``stealthKeys`` output to (spending, viewing) public keys.

    Returns None when the registrant has not published keys (all zero).
    """
    spending_prefix, spending_x, viewing_prefix, viewing_x = decode(
        ["uint256", "uint256", "uint256", "uint256"], bytes(result)
    )
    if spending_prefix == 0 and viewing_prefix == 0:
        return None
    return join_public_key(spending_prefix, spending_x), join_public_key(viewing_prefix, viewing_x)
