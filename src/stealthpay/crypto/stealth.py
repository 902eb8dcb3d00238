"""
Stealth address computation (send side) and stealth key recovery (receive side).

Mathematical foundation:
    Receiver publishes spending key P_spend = k·G and viewing key P_view = v·G.

    Sender:
        e            ← random scalar,   R = e·G           (ephemeral public key)
        s            = keccak256(compress(e·P_view)) mod n (shared secret)
        P_stealth    = P_spend + s·G
        address      = keccak256(P_stealth)[12:]
        view_tag     = keccak256(s)[0]

    Receiver:
        s            = keccak256(compress(v·R)) mod n      (e·v·G == v·e·G)
        k_stealth    = (k + s) mod n

    Correctness: k_stealth·G = k·G + s·G = P_stealth.

The view tag lets a scanner reject ~255/256 of foreign announcements after one
point multiplication and two hashes, without computing P_stealth.
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_utils import keccak

from stealthpay.crypto.secp256k1 import (
    SECP256K1_N,
    address_from_point,
    decode_point,
    encode_point,
    parse_private_key,
    point_to_bytes,
    random_scalar,
    scalar_mult_base,
    scalar_to_bytes,
    scalar_to_hex,
)

# Width of the view tag in bytes; fixed by the contract's bytes1 announcement field
VIEW_TAG_BYTES = 1


@dataclass(frozen=True)
class StealthAddress:
    """
    Output of a send-side stealth address computation.

    Attributes:
        ephemeral_public_key: R = e·G, published in the announcement.
        stealth_public_key: P_spend + s·G.
        stealth_address: checksummed address of the stealth public key.
        view_tag: first byte of keccak256(s).
    """
    ephemeral_public_key: str
    stealth_public_key: str
    stealth_address: str
    view_tag: int


# ==============================================================================
# Core functions
# ==============================================================================


def compute_shared_secret(private_key: int | str, public_key: str) -> int:
    """
    ECDH shared secret s = keccak256(compress(private·Public)) mod n.

    Symmetric: compute_shared_secret(e, v·G) == compute_shared_secret(v, e·G).
    """
    scalar = parse_private_key(private_key)
    shared_point = scalar * decode_point(public_key)
    return int.from_bytes(keccak(point_to_bytes(shared_point)), "big") % SECP256K1_N


def compute_view_tag(shared_secret: int) -> int:
    """The one-byte view tag for a shared secret."""
    return keccak(scalar_to_bytes(shared_secret))[0]


def compute_stealth_public_key(spending_public_key: str, shared_secret: int) -> str:
    """P_stealth = P_spend + s·G, compressed hex."""
    return encode_point(decode_point(spending_public_key) + scalar_mult_base(shared_secret))


def stealth_address_for(spending_public_key: str, shared_secret: int) -> str:
    """Checksummed address of P_spend + s·G."""
    return address_from_point(decode_point(spending_public_key) + scalar_mult_base(shared_secret))


def compute_stealth_address(
    viewing_public_key: str,
    spending_public_key: str,
    ephemeral_private_key: int | None = None,
) -> StealthAddress:
    """
    Compute a fresh one-time stealth address for a receiver.

    Args:
        viewing_public_key: receiver's viewing public key (any point encoding).
        spending_public_key: receiver's spending public key.
        ephemeral_private_key: override for the random ephemeral scalar e.
            Only for deterministic tests; production callers leave it None.

    Returns:
        StealthAddress with the ephemeral key, stealth key/address and view tag.

    Raises:
        ValueError: if either public key is malformed.
    """
    # Decode early so bad keys fail before randomness is drawn
    decode_point(viewing_public_key)
    decode_point(spending_public_key)

    e = random_scalar() if ephemeral_private_key is None else parse_private_key(ephemeral_private_key)
    ephemeral_public_key = encode_point(scalar_mult_base(e))

    s = compute_shared_secret(e, viewing_public_key)
    stealth_point = decode_point(spending_public_key) + scalar_mult_base(s)

    return StealthAddress(
        ephemeral_public_key=ephemeral_public_key,
        stealth_public_key=encode_point(stealth_point),
        stealth_address=address_from_point(stealth_point),
        view_tag=compute_view_tag(s),
    )


def compute_stealth_private_key(
    viewing_private_key: int | str,
    ephemeral_public_key: str,
    spending_private_key: int | str,
) -> str:
    """
    Recover the private key controlling a stealth address.

    Args:
        viewing_private_key: receiver's viewing private key v.
        ephemeral_public_key: R from the announcement.
        spending_private_key: receiver's spending private key k.

    Returns:
        0x-prefixed 32-byte hex of k_stealth = (k + s) mod n.

    Raises:
        ValueError: if a key is malformed or the result is zero.
    """
    s = compute_shared_secret(viewing_private_key, ephemeral_public_key)
    k = parse_private_key(spending_private_key)
    stealth_key = (k + s) % SECP256K1_N
    if stealth_key == 0:
        raise ValueError("Derived stealth private key is zero")
    return scalar_to_hex(stealth_key)


def stealth_private_key_from_secret(spending_private_key: int | str, shared_secret: int) -> str:
    """k_stealth from an already recovered shared secret (e.g. a ScanResult)."""
    k = parse_private_key(spending_private_key)
    stealth_key = (k + shared_secret) % SECP256K1_N
    if stealth_key == 0:
        raise ValueError("Derived stealth private key is zero")
    return scalar_to_hex(stealth_key)
