"""
Tests for StrKey account id encoding.

Test plan:
- Known vector: the all-zero key encodes to its published account id
- encode → decode returns the raw key
- Rejections: wrong length, lowercase, bad checksum, wrong version byte
- is_public_key: boolean wrapper, never raises
"""

import base64

import pytest

from nexus_pay.stellar.strkey import (
    ACCOUNT_ID_LENGTH,
    _crc16_xmodem,
    decode_public_key,
    encode_public_key,
    is_public_key,
)

ZERO_ACCOUNT = "GAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAWHF"


class TestEncode:
    def test_zero_key_vector(self) -> None:
        assert encode_public_key(bytes(32)) == ZERO_ACCOUNT

    def test_shape(self) -> None:
        account_id = encode_public_key(bytes(range(32)))
        assert len(account_id) == ACCOUNT_ID_LENGTH
        assert account_id.startswith("G")

    def test_decode_returns_raw_key(self) -> None:
        raw = bytes(range(100, 132))
        assert decode_public_key(encode_public_key(raw)) == raw

    def test_wrong_raw_length_rejected(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            encode_public_key(b"\x01" * 31)


class TestDecode:
    def test_wrong_length(self) -> None:
        with pytest.raises(ValueError, match="56 chars"):
            decode_public_key(ZERO_ACCOUNT[:-1])

    def test_lowercase_rejected(self) -> None:
        with pytest.raises(ValueError, match="base32"):
            decode_public_key(ZERO_ACCOUNT.lower())

    def test_checksum_mismatch(self) -> None:
        tampered = ZERO_ACCOUNT[:10] + "B" + ZERO_ACCOUNT[11:]
        with pytest.raises(ValueError, match="checksum"):
            decode_public_key(tampered)

    def test_wrong_version_byte(self) -> None:
        # Secret seed version byte (18 << 3), valid checksum.
        body = bytes([18 << 3]) + bytes(32)
        seed = base64.b32encode(body + _crc16_xmodem(body).to_bytes(2, "little")).decode()
        assert seed.startswith("S")
        with pytest.raises(ValueError, match="version byte"):
            decode_public_key(seed)


class TestIsPublicKey:
    def test_valid(self) -> None:
        assert is_public_key(ZERO_ACCOUNT)

    @pytest.mark.parametrize(
        "value",
        ["", "alice*example.com", "G" * 56, ZERO_ACCOUNT + "A", ZERO_ACCOUNT.lower()],
    )
    def test_invalid(self, value: str) -> None:
        assert not is_public_key(value)
