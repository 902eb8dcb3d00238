"""
Unit tests for stealthpay.crypto.secp256k1 — point codec, scalars, addresses.

Pure math: no network, no mocks.
"""

import secrets

import pytest

from stealthpay.crypto.secp256k1 import (
    G_COMPRESSED,
    SECP256K1_N,
    SECP256K1_P,
    address_from_point,
    address_from_public_key,
    compress_public_key,
    decode_point,
    encode_point,
    encode_point_uncompressed,
    parse_private_key,
    public_key_from_private,
    random_scalar,
    scalar_mult_base,
    scalar_to_hex,
    validate_private_key,
)


def _random_scalar() -> int:
    return secrets.randbelow(SECP256K1_N - 1) + 1


# ==============================================================================
# Point encode/decode
# ==============================================================================


class TestPointCodec:

    def test_roundtrip_generator(self):
        assert encode_point(decode_point(G_COMPRESSED)) == G_COMPRESSED

    def test_generator_on_curve(self):
        pt = decode_point(G_COMPRESSED)
        x, y = pt.x(), pt.y()
        assert (y * y) % SECP256K1_P == (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P

    def test_accepts_missing_prefix(self):
        assert encode_point(decode_point(G_COMPRESSED[2:])) == G_COMPRESSED

    def test_uncompressed_roundtrip(self):
        pt = scalar_mult_base(_random_scalar())
        uncompressed = encode_point_uncompressed(pt)
        assert len(uncompressed) == 2 + 130
        assert compress_public_key(uncompressed) == encode_point(pt)

    def test_odd_y_prefix(self):
        """Both parities survive the round trip."""
        seen = set()
        for _ in range(20):
            encoded = encode_point(scalar_mult_base(_random_scalar()))
            seen.add(encoded[:4])
            assert encode_point(decode_point(encoded)) == encoded
        assert seen == {"0x02", "0x03"}

    def test_rejects_bad_prefix(self):
        with pytest.raises(ValueError, match="Invalid prefix"):
            decode_point("0x05" + G_COMPRESSED[4:])

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError, match="33 or 65 bytes"):
            decode_point("0x0279be667ef9dcbbac")

    def test_rejects_non_hex(self):
        with pytest.raises(ValueError, match="Invalid hex"):
            decode_point("0x02" + "zz" * 32)

    def test_rejects_off_curve_uncompressed(self):
        with pytest.raises(ValueError, match="not a point"):
            decode_point("0x04" + "01" * 32 + "01" * 32)

    def test_rejects_non_string(self):
        with pytest.raises(ValueError):
            decode_point(12345)


# ==============================================================================
# Scalars
# ==============================================================================


class TestScalars:

    def test_random_scalar_in_range(self):
        for _ in range(50):
            assert 1 <= random_scalar() < SECP256K1_N

    def test_validate_rejects_zero_and_order(self):
        with pytest.raises(ValueError, match=r"\[1, N-1\]"):
            validate_private_key(0)
        with pytest.raises(ValueError, match=r"\[1, N-1\]"):
            validate_private_key(SECP256K1_N)

    def test_validate_rejects_bool(self):
        with pytest.raises(ValueError, match="integer"):
            validate_private_key(True)

    def test_parse_hex_bytes_and_int_agree(self):
        k = _random_scalar()
        as_hex = scalar_to_hex(k)
        assert parse_private_key(k) == k
        assert parse_private_key(as_hex) == k
        assert parse_private_key(bytes.fromhex(as_hex[2:])) == k

    def test_parse_rejects_short_key(self):
        with pytest.raises(ValueError, match="32-byte"):
            parse_private_key("0x1234")

    def test_public_key_of_one_is_generator(self):
        assert public_key_from_private(1) == G_COMPRESSED


# ==============================================================================
# Addresses
# ==============================================================================


class TestAddresses:

    def test_known_address_for_key_one(self):
        assert address_from_point(scalar_mult_base(1)) == "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

    def test_known_address_for_key_two(self):
        assert address_from_point(scalar_mult_base(2)) == "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"

    def test_address_independent_of_encoding(self):
        pt = scalar_mult_base(_random_scalar())
        assert address_from_public_key(encode_point(pt)) == address_from_public_key(
            encode_point_uncompressed(pt)
        )
