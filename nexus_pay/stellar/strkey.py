"""
StrKey encoding for Stellar account ids.

An account id ("G...") is the base32 encoding of:

    version byte (6 << 3) | 32-byte ed25519 public key | CRC16-XModem (LE)

Only structural validation happens here. Whether the account exists on
the ledger is a network concern.
"""

from __future__ import annotations

import base64
import binascii

# Version byte for ed25519 public keys ("G" prefix).
ACCOUNT_ID_VERSION = 6 << 3

ACCOUNT_ID_LENGTH = 56
_PAYLOAD_LENGTH = 32


def _crc16_xmodem(data: bytes) -> int:
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def encode_public_key(raw: bytes) -> str:
    """Encode a 32-byte ed25519 public key as a "G..." account id.

    Raises:
        ValueError: If raw is not exactly 32 bytes.
    """
    if len(raw) != _PAYLOAD_LENGTH:
        raise ValueError(f"public key must be {_PAYLOAD_LENGTH} bytes, got {len(raw)}")
    body = bytes([ACCOUNT_ID_VERSION]) + raw
    checksum = _crc16_xmodem(body).to_bytes(2, "little")
    return base64.b32encode(body + checksum).decode("ascii")


def decode_public_key(account_id: str) -> bytes:
    """Decode a "G..." account id to its 32-byte public key.

    Raises:
        ValueError: On wrong length, alphabet, version byte or checksum.
    """
    if len(account_id) != ACCOUNT_ID_LENGTH:
        raise ValueError(f"account id must be {ACCOUNT_ID_LENGTH} chars")
    try:
        decoded = base64.b32decode(account_id.encode("ascii"), casefold=False)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(f"account id is not valid base32: {exc}") from exc

    body, checksum = decoded[:-2], decoded[-2:]
    if body[0] != ACCOUNT_ID_VERSION:
        raise ValueError("account id has wrong version byte")
    if _crc16_xmodem(body).to_bytes(2, "little") != checksum:
        raise ValueError("account id checksum mismatch")
    return body[1:]


def is_public_key(value: str) -> bool:
    """True if value is a structurally valid "G..." account id."""
    try:
        decode_public_key(value)
    except ValueError:
        return False
    return True
