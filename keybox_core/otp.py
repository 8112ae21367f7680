"""
keybox_core.otp
---------------
HOTP / TOTP code generation (RFC 4226 / RFC 6238, HMAC-SHA1) and
`otpauth://` URI handling.

    code = Truncate(HMAC-SHA1(key=secret, msg=counter)) mod 10^digits

TOTP is HOTP with counter = floor(now / period). Time is read from an
injected clock (keybox_core.clock) so tests can pin the instant.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit, parse_qs, quote, unquote
import hashlib
import hmac
import math
import struct

from . import base32
from .clock import Clock, SystemClock

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
MAX_DIGITS = 10
# HOTP counters are 8-byte big-endian
MAX_COUNTER = 0xFFFFFFFFFFFFFFFF
FALLBACK_CODE = "000000"
UNKNOWN_ISSUER = "Unknown"

_system_clock = SystemClock()


def int_to_bytes(i: int) -> bytes:
    # HOTP/TOTP use an 8-byte counter (big-endian)
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    # RFC 4226 dynamic truncation, sign bit cleared
    offset = hmac_digest[-1] & 0x0F
    return struct.unpack(">I", hmac_digest[offset:offset + 4])[0] & 0x7FFFFFFF


def _check_digits(digits: int) -> None:
    if not 1 <= digits <= MAX_DIGITS:
        raise ValueError(f"digits must be between 1 and {MAX_DIGITS}, got {digits}")


def hotp(key: bytes, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """
    Compute an HOTP code for a raw (already decoded) key.

    Raises ValueError for a counter outside 0..MAX_COUNTER or a digit count
    outside 1..MAX_DIGITS.
    """
    _check_digits(digits)
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError(f"counter must be between 0 and {MAX_COUNTER}, got {counter}")
    digest = hmac.new(key, int_to_bytes(counter), hashlib.sha1).digest()
    return str(dynamic_truncate(digest) % (10 ** digits)).zfill(digits)


def time_counter(period: float = DEFAULT_PERIOD, now: Optional[float] = None) -> int:
    if period <= 0:
        raise ValueError("period must be positive")
    if now is None:
        now = _system_clock.now()
    return int(math.floor(now / period))


def totp(key: bytes, period: float = DEFAULT_PERIOD, digits: int = DEFAULT_DIGITS,
         now: Optional[float] = None) -> str:
    return hotp(key, time_counter(period, now), digits)


def progress(period: float = DEFAULT_PERIOD, now: Optional[float] = None) -> float:
    """Fraction of the current period still remaining, in (0, 1]."""
    if period <= 0:
        raise ValueError("period must be positive")
    if now is None:
        now = _system_clock.now()
    return (period - math.fmod(now, period)) / period


def seconds_remaining(period: float = DEFAULT_PERIOD, now: Optional[float] = None) -> int:
    if period <= 0:
        raise ValueError("period must be positive")
    if now is None:
        now = _system_clock.now()
    return int(math.ceil(period - math.fmod(now, period)))


def generate_code(secret_b32: str, period: float = DEFAULT_PERIOD,
                  digits: int = DEFAULT_DIGITS, clock: Optional[Clock] = None) -> Optional[str]:
    """TOTP for a Base32 secret; None when the secret does not decode."""
    key = base32.decode(secret_b32)
    if key is None:
        return None
    return totp(key, period, digits, (clock or _system_clock).now())


def generate_hotp_code(secret_b32: str, counter: int,
                       digits: int = DEFAULT_DIGITS) -> Optional[str]:
    key = base32.decode(secret_b32)
    if key is None:
        return None
    return hotp(key, counter, digits)


# --------- otpauth:// URIs ----------

class OTPUriError(ValueError):
    """An otpauth URI the vault cannot ingest. The message is user facing."""


@dataclass
class OTPUri:
    issuer: str
    account_name: str
    secret: str


def parse_otpauth_uri(uri: str) -> OTPUri:
    """
    Parse `otpauth://totp/{label}?secret=...&issuer=...`.

    Only TOTP URIs are accepted. The label path, with surrounding slashes
    stripped, becomes the account name; a missing issuer falls back to
    "Unknown".
    """
    try:
        parts = urlsplit(uri.strip())
    except ValueError as e:
        raise OTPUriError("Invalid QR code") from e

    if parts.scheme.lower() != "otpauth":
        raise OTPUriError("Not a valid 2FA QR Code (must start with otpauth://)")
    if parts.netloc.lower() != "totp":
        raise OTPUriError("Only TOTP is supported currently.")

    query = parse_qs(parts.query)
    secret = (query.get("secret") or [None])[0]
    if not secret:
        raise OTPUriError("Missing secret in QR Code.")

    issuer = (query.get("issuer") or [None])[0] or UNKNOWN_ISSUER
    label = unquote(parts.path).strip("/")
    return OTPUri(issuer=issuer, account_name=label, secret=secret)


def format_otpauth_uri(secret_b32: str, issuer: str, account: str) -> str:
    issuer_safe = quote(issuer, safe="")
    account_safe = quote(account, safe="")
    return f"otpauth://totp/{issuer_safe}:{account_safe}?secret={secret_b32}&issuer={issuer_safe}"
