"""
secp256k1 primitives shared by key derivation, stealth addresses and scanning.

Provides:
- Curve constants (field prime, group order, generator)
- Point encode/decode for compressed (33-byte) and uncompressed (65-byte) keys
- Scalar helpers (reduction, random scalars, 32-byte encoding)
- Ethereum address derivation from a public point

All public keys cross module boundaries as 0x-prefixed hex strings; points are
only materialised as ecdsa objects for arithmetic.

References:
    [SEC2]  Certicom, "SEC 2: Recommended Elliptic Curve Domain Parameters", §2.4.1.
    [YP]    Ethereum Yellow Paper, Appendix F — address = keccak256(pub)[12:].
"""

from __future__ import annotations

import secrets

import ecdsa
import ecdsa.ellipticcurve as ec
from eth_utils import keccak, to_checksum_address

# ==============================================================================
# secp256k1 curve constants
# ==============================================================================

# Field prime
SECP256K1_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

# Group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Generator point (compressed)
G_COMPRESSED = "0x0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"

_CURVE = ecdsa.SECP256k1.curve
_GENERATOR = ecdsa.SECP256k1.generator


# ==============================================================================
# Point utilities
# ==============================================================================


def _strip_hex(hex_str: str) -> bytes:
    if not isinstance(hex_str, str):
        raise ValueError(f"Expected a hex string, got {type(hex_str).__name__}")
    s = hex_str[2:] if hex_str.lower().startswith("0x") else hex_str
    try:
        return bytes.fromhex(s)
    except ValueError:
        raise ValueError(f"Invalid hex string: {hex_str!r}") from None


def decode_point(hex_str: str) -> ec.PointJacobi:
    """
    Decode a secp256k1 public key to an ecdsa point.

    Accepts 33-byte compressed (02/03 prefix) and 65-byte uncompressed
    (04 prefix) encodings, with or without a leading ``0x``.

    Raises:
        ValueError: If the encoding is malformed or the point is not on the curve.
    """
    raw = _strip_hex(hex_str)

    if len(raw) == 65:
        if raw[0] != 0x04:
            raise ValueError(f"Invalid prefix byte for uncompressed key: 0x{raw[0]:02x}")
        x = int.from_bytes(raw[1:33], "big")
        y = int.from_bytes(raw[33:], "big")
        if x >= SECP256K1_P or y >= SECP256K1_P:
            raise ValueError("Point coordinate exceeds the field prime")
        if (y * y - pow(x, 3, SECP256K1_P) - 7) % SECP256K1_P != 0:
            raise ValueError("Uncompressed key is not a point on secp256k1")
        return ec.PointJacobi(_CURVE, x, y, 1)

    if len(raw) != 33:
        raise ValueError(f"Expected 33 or 65 bytes, got {len(raw)}")
    prefix = raw[0]
    if prefix not in (0x02, 0x03):
        raise ValueError(f"Invalid prefix byte: 0x{prefix:02x}")

    x = int.from_bytes(raw[1:], "big")
    if x >= SECP256K1_P:
        raise ValueError("X coordinate exceeds the field prime")
    y_sq = (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P
    y = pow(y_sq, (SECP256K1_P + 1) // 4, SECP256K1_P)

    if (y * y) % SECP256K1_P != y_sq:
        raise ValueError(f"X coordinate 0x{x:064x} does not correspond to a curve point")

    is_even = (prefix == 0x02)
    if (y % 2 == 0) != is_even:
        y = SECP256K1_P - y

    return ec.PointJacobi(_CURVE, x, y, 1)


def encode_point(pt: ec.AbstractPoint) -> str:
    """
    Encode an ecdsa point as a 0x-prefixed 33-byte compressed hex string.

    Raises:
        ValueError: If the point is the identity (point at infinity).
    """
    if pt == ec.INFINITY:
        raise ValueError("Cannot encode the point at infinity")
    prefix = b"\x02" if pt.y() % 2 == 0 else b"\x03"
    return "0x" + (prefix + pt.x().to_bytes(32, "big")).hex()


def encode_point_uncompressed(pt: ec.AbstractPoint) -> str:
    """Encode an ecdsa point as 0x04 || X || Y (65 bytes, 0x-prefixed hex)."""
    if pt == ec.INFINITY:
        raise ValueError("Cannot encode the point at infinity")
    return "0x04" + pt.x().to_bytes(32, "big").hex() + pt.y().to_bytes(32, "big").hex()


def compress_public_key(hex_str: str) -> str:
    """Normalise any supported public key encoding to compressed 0x hex."""
    return encode_point(decode_point(hex_str))


def point_to_bytes(pt: ec.AbstractPoint) -> bytes:
    """Compressed 33-byte encoding, used as hash input for shared secrets."""
    return bytes.fromhex(encode_point(pt)[2:])


# ==============================================================================
# Scalars
# ==============================================================================


def scalar_mult_base(scalar: int) -> ec.PointJacobi:
    """Return scalar·G."""
    return scalar * _GENERATOR


def public_key_from_private(private_key: int) -> str:
    """Compressed 0x hex public key for a private scalar in [1, N-1]."""
    validate_private_key(private_key)
    return encode_point(scalar_mult_base(private_key))


def validate_private_key(private_key: int) -> int:
    """
    Check that a private key is a scalar in [1, N-1].

    Raises:
        ValueError: If out of range or not an integer.
    """
    if isinstance(private_key, bool) or not isinstance(private_key, int):
        raise ValueError(f"private key must be an integer, got {type(private_key).__name__}")
    if private_key <= 0 or private_key >= SECP256K1_N:
        raise ValueError("private key must be in [1, N-1]")
    return private_key


def parse_private_key(private_key: int | str | bytes) -> int:
    """Accept an int, 0x hex string or 32 raw bytes and return the scalar."""
    if isinstance(private_key, (bytes, bytearray)):
        if len(private_key) != 32:
            raise ValueError(f"Expected 32-byte private key, got {len(private_key)}")
        value = int.from_bytes(private_key, "big")
    elif isinstance(private_key, str):
        raw = _strip_hex(private_key)
        if len(raw) != 32:
            raise ValueError(f"Expected 32-byte private key, got {len(raw)}")
        value = int.from_bytes(raw, "big")
    else:
        value = private_key
    return validate_private_key(value)


def random_scalar() -> int:
    """Uniform random scalar in [1, N-1] from the OS CSPRNG."""
    return secrets.randbelow(SECP256K1_N - 1) + 1


def scalar_to_bytes(scalar: int) -> bytes:
    """32-byte big-endian encoding of a scalar."""
    return (scalar % SECP256K1_N).to_bytes(32, "big")


def scalar_to_hex(scalar: int) -> str:
    """0x-prefixed 64-char hex of a scalar."""
    return "0x" + scalar_to_bytes(scalar).hex()


# ==============================================================================
# Addresses
# ==============================================================================


def address_from_point(pt: ec.AbstractPoint) -> str:
    """EIP-55 checksummed address: last 20 bytes of keccak256(X || Y)."""
    if pt == ec.INFINITY:
        raise ValueError("The point at infinity has no address")
    raw = pt.x().to_bytes(32, "big") + pt.y().to_bytes(32, "big")
    return to_checksum_address(keccak(raw)[12:])


def address_from_public_key(public_key_hex: str) -> str:
    """Address for a public key in any supported encoding."""
    return address_from_point(decode_point(public_key_hex))
