"""
keybox_core.base32
------------------
RFC 4648 Base32 codec for OTP secrets.

Decoding is lenient the way authenticator apps are: case-insensitive, with
`=` padding and spaces ignored. Any other character outside the alphabet
makes the whole decode fail (returns None). Leftover bits that do not fill
a byte are dropped.
"""

from __future__ import annotations
import secrets
from typing import Optional

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_LOOKUP = {ch: i for i, ch in enumerate(ALPHABET)}
_IGNORED = {"=", " "}


def decode(text: str) -> Optional[bytes]:
    buffer = 0
    bits_left = 0
    out = bytearray()

    for ch in text.upper():
        if ch in _IGNORED:
            continue
        val = _LOOKUP.get(ch)
        if val is None:
            return None

        buffer = ((buffer << 5) | val) & 0xFFFF
        bits_left += 5
        if bits_left >= 8:
            out.append((buffer >> (bits_left - 8)) & 0xFF)
            bits_left -= 8

    return bytes(out)


def encode(data: bytes) -> str:
    """Encode bytes to unpadded Base32 text."""
    buffer = 0
    bits_left = 0
    out = []

    for byte in data:
        buffer = ((buffer << 8) | byte) & 0xFFFF
        bits_left += 8
        while bits_left >= 5:
            out.append(ALPHABET[(buffer >> (bits_left - 5)) & 0x1F])
            bits_left -= 5

    if bits_left:
        out.append(ALPHABET[(buffer << (5 - bits_left)) & 0x1F])
    return "".join(out)


def random_secret(length: int = 16) -> str:
    # 16 symbols = 80 bits, the length authenticator apps expect
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
