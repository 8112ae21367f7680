"""
keybox_core.auth
----------------
Authorization gate in front of sensitive actions (reveal, copy, delete,
save, toggling sync, reset).

The actual prompt (Face ID, a PIN dialog, a desktop keyring unlock...) is an
external collaborator implementing `Authorizer`. The gate awaits it and runs
the gated action only if access was granted.
"""

from __future__ import annotations
from typing import Callable, Optional, Protocol, TypeVar
import inspect

from .activity import ActivityLog
from .logger import get_logger
from .models import ActivityType

log = get_logger("Keybox.Auth")

R = TypeVar("R")


class Authorizer(Protocol):
    async def authorize(self, reason: str) -> bool:
        ...


class StaticAuthorizer:
    """Always answers the same; records the reasons it was asked for."""

    def __init__(self, result: bool = True):
        self.result = result
        self.reasons = []

    async def authorize(self, reason: str) -> bool:
        self.reasons.append(reason)
        return self.result


class BiometricGate:
    def __init__(self, authorizer: Authorizer, enabled: bool = True,
                 activity: Optional[ActivityLog] = None):
        self.authorizer = authorizer
        self.enabled = enabled
        self.activity = activity
        self.unlocked = False

    async def authorize(self, reason: str) -> bool:
        if not self.enabled:
            # Biometrics switched off in settings: nothing to ask
            return True
        try:
            granted = bool(await self.authorizer.authorize(reason))
        except Exception:
            log.exception(f"[AUTH] authorizer failed for {reason!r}")
            return False
        log.info(f"[AUTH] {reason!r} granted={granted}")
        return granted

    async def run(self, reason: str, action: Callable[[], R]) -> Optional[R]:
        """Run `action` only after, and only if, authorization is granted."""
        if not await self.authorize(reason):
            return None
        result = action()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def unlock(self) -> bool:
        self.unlocked = await self.authorize("Unlock Keybox")
        if self.unlocked and self.enabled and self.activity is not None:
            self.activity.add(ActivityType.SECURITY, "App Unlocked", "Unlocked via biometrics")
        return self.unlocked
