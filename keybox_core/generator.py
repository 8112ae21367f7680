"""Random passwords and OTP secrets."""

from __future__ import annotations
import secrets
import string

from . import base32

SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def generate_password(length: int = 12, uppercase: bool = True, numbers: bool = True,
                      symbols: bool = False) -> str:
    if length < 1:
        raise ValueError("length must be positive")
    charset = string.ascii_lowercase
    if uppercase:
        charset += string.ascii_uppercase
    if numbers:
        charset += string.digits
    if symbols:
        charset += SYMBOLS
    return "".join(secrets.choice(charset) for _ in range(length))


def generate_secret(length: int = 16) -> str:
    return base32.random_secret(length)
