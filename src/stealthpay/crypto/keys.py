"""
Deterministic derivation of a receiver's spending and viewing key pairs.

The receiver never stores stealth keys. Instead both key pairs are re-derived
on demand from signatures over two fixed messages:

    spending_key = keccak256(sign(SPENDING_KEY_MESSAGE)) mod n
    viewing_key  = keccak256(sign(VIEWING_KEY_MESSAGE))  mod n

EIP-191 personal-sign signatures from a standard Ethereum account are
deterministic (RFC 6979), so the same account always yields the same keys.
The two messages are distinct, so the keys come from independent hash inputs
and exposing the viewing key reveals nothing about the spending key.

Any object with ``sign_message(text) -> bytes`` can act as the signer; see
``stealthpay.core.wallet.Wallet``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from eth_utils import keccak

from stealthpay.crypto.secp256k1 import (
    SECP256K1_N,
    address_from_public_key,
    compress_public_key,
    public_key_from_private,
    scalar_to_hex,
    validate_private_key,
)

SPENDING_KEY_MESSAGE = (
    "Sign this message to derive your stealth payment spending key.\n\n"
    "Only sign this message for a trusted client!"
)

VIEWING_KEY_MESSAGE = (
    "Sign this message to derive your stealth payment viewing key.\n\n"
    "Only sign this message for a trusted client!"
)


@runtime_checkable
class MessageSigner(Protocol):
    """Anything that can sign an arbitrary text message (EIP-191)."""

    def sign_message(self, message: str) -> bytes: ...


@dataclass(frozen=True)
class KeyPair:
    """
    A secp256k1 key pair, optionally without its private half.

    Attributes:
        public_key: 0x-prefixed compressed public key.
        private_key: scalar in [1, N-1], or None for a public-only pair.
    """
    public_key: str
    private_key: int | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_key", compress_public_key(self.public_key))
        if self.private_key is not None:
            validate_private_key(self.private_key)
            if public_key_from_private(self.private_key) != self.public_key:
                raise ValueError("public_key does not match private_key")

    @classmethod
    def from_private_key(cls, private_key: int) -> KeyPair:
        return cls(public_key=public_key_from_private(private_key), private_key=private_key)

    @property
    def address(self) -> str:
        """Checksummed address of the public key."""
        return address_from_public_key(self.public_key)

    @property
    def private_key_hex(self) -> str | None:
        """0x-prefixed 32-byte hex private key, if present."""
        if self.private_key is None:
            return None
        return scalar_to_hex(self.private_key)

    def public_only(self) -> KeyPair:
        """Strip the private half (e.g. before handing the pair to a sender)."""
        return KeyPair(public_key=self.public_key)


@dataclass(frozen=True)
class ReceiverPublicKeys:
    """The two public keys a sender needs to pay a receiver."""
    spending_public_key: str
    viewing_public_key: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "spending_public_key", compress_public_key(self.spending_public_key)
        )
        object.__setattr__(
            self, "viewing_public_key", compress_public_key(self.viewing_public_key)
        )


@dataclass(frozen=True)
class DerivedKeys:
    """A receiver's independently derived spending and viewing key pairs."""
    spending_key_pair: KeyPair
    viewing_key_pair: KeyPair

    @property
    def public_keys(self) -> ReceiverPublicKeys:
        return ReceiverPublicKeys(
            spending_public_key=self.spending_key_pair.public_key,
            viewing_public_key=self.viewing_key_pair.public_key,
        )


def signature_to_scalar(signature: bytes) -> int:
    """
    Hash a signature to a non-zero scalar modulo the curve order.

    A zero result (probability ~2^-256) is handled by re-hashing the digest.
    """
    digest = keccak(bytes(signature))
    scalar = int.from_bytes(digest, "big") % SECP256K1_N
    while scalar == 0:
        digest = keccak(digest)
        scalar = int.from_bytes(digest, "big") % SECP256K1_N
    return scalar


def derive_key_pair(signer: MessageSigner, message: str) -> KeyPair:
    """Derive one key pair from the signer's signature over ``message``."""
    signature = signer.sign_message(message)
    if not signature:
        raise ValueError("Signer returned an empty signature")
    return KeyPair.from_private_key(signature_to_scalar(signature))


def derive_keys(signer: MessageSigner) -> DerivedKeys:
    """
    Derive a receiver's spending and viewing key pairs from a signing capability.

    Args:
        signer: object exposing ``sign_message(text) -> bytes``

    Returns:
        DerivedKeys with both key pairs (private halves included).
    """
    return DerivedKeys(
        spending_key_pair=derive_key_pair(signer, SPENDING_KEY_MESSAGE),
        viewing_key_pair=derive_key_pair(signer, VIEWING_KEY_MESSAGE),
    )
