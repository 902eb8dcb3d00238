"""
stealthpay.crypto — Cryptographic primitives for stealth payments.

Provides:
- secp256k1 point encode/decode and scalar utilities
- Deterministic spending/viewing key derivation from a message signer
- Stealth address computation and stealth private key recovery
- Withdrawal digests and signatures for relayed withdrawals
"""

from stealthpay.crypto.keys import (
    SPENDING_KEY_MESSAGE,
    VIEWING_KEY_MESSAGE,
    DerivedKeys,
    KeyPair,
    ReceiverPublicKeys,
    derive_keys,
)
from stealthpay.crypto.secp256k1 import (
    G_COMPRESSED,
    SECP256K1_N,
    compress_public_key,
    decode_point,
    encode_point,
    public_key_from_private,
)
from stealthpay.crypto.stealth import (
    VIEW_TAG_BYTES,
    StealthAddress,
    compute_shared_secret,
    compute_stealth_address,
    compute_stealth_private_key,
    compute_view_tag,
)
from stealthpay.crypto.withdrawal import (
    DataFormatError,
    SignatureError,
    WithdrawalAuthorization,
    build_and_sign,
    build_digest,
    sign_withdrawal,
)

__all__ = [
    # secp256k1
    "G_COMPRESSED",
    "SECP256K1_N",
    "compress_public_key",
    "decode_point",
    "encode_point",
    "public_key_from_private",
    # Key derivation
    "SPENDING_KEY_MESSAGE",
    "VIEWING_KEY_MESSAGE",
    "DerivedKeys",
    "KeyPair",
    "ReceiverPublicKeys",
    "derive_keys",
    # Stealth addresses
    "VIEW_TAG_BYTES",
    "StealthAddress",
    "compute_shared_secret",
    "compute_stealth_address",
    "compute_stealth_private_key",
    "compute_view_tag",
    # Withdrawal authorisation
    "DataFormatError",
    "SignatureError",
    "WithdrawalAuthorization",
    "build_and_sign",
    "build_digest",
    "sign_withdrawal",
]
