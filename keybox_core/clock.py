"""
keybox_core.clock
-----------------
Injectable time sources. OTP generation and countdown progress read the
current instant through a clock so callers (and tests) can pin it.
"""

from __future__ import annotations
import time
from datetime import datetime, timezone
from typing import Protocol

from .utils import utcnow


class Clock(Protocol):
    def now(self) -> float:
        """Seconds since the unix epoch."""

    def utcnow(self) -> datetime:
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()

    def utcnow(self) -> datetime:
        return utcnow()


class FixedClock:
    """A clock frozen at a given instant; `advance()` moves it forward."""

    def __init__(self, ts: float = 0.0):
        self.ts = float(ts)

    def now(self) -> float:
        return self.ts

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.ts, tz=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.ts += seconds
