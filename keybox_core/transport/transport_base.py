from __future__ import annotations
from typing import Callable, List, Optional

ChangeHandler = Callable[[List[str]], None]


class TransportError(Exception):
    pass


class TransportTransientError(TransportError):
    pass


class TransportPermanentError(TransportError):
    pass


class BaseBlobTransport:
    """
    Remote sync contract: a small key-value blob store.

    Keys are the logical collection keys (tokens, accounts); values are the
    already-encrypted local blobs, so a transport never sees plaintext.
    Adapters raise TransportError subclasses; the sync engine decides what
    to do with them.
    """
    name: str = "base"

    def __init__(self):
        self._handlers: List[ChangeHandler] = []

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def set(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def synchronize(self) -> bool:
        """Flush pending writes; False when the backend refused."""
        return True

    def subscribe(self, handler: ChangeHandler) -> None:
        """Register `handler(changed_keys)` for changes made by other devices."""
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: ChangeHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def notify_external_change(self, keys: List[str]) -> None:
        for handler in list(self._handlers):
            handler(list(keys))

    def healthz(self) -> dict:
        return {"status": "ok", "transport": self.name}

    def close(self) -> None:
        return
