# keybox_core/storage/provider.py
from __future__ import annotations
from typing import List, Optional


class StorageProvider:
    """
    Local persistent key-value storage for Keybox blobs.

    Values are opaque bytes; encryption happens above this layer, in the
    record stores. Providers must treat `set` as a whole-value replace.
    """

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def set(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def get_text(self, key: str) -> Optional[str]:
        raw = self.get(key)
        return raw.decode("utf-8") if raw is not None else None

    def set_text(self, key: str, value: str) -> None:
        self.set(key, value.encode("utf-8"))

    def close(self) -> None:
        return
