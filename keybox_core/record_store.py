"""
keybox_core.record_store
------------------------
Encrypted-at-rest persistence of one named collection of records.

save():  list -> JSON array -> AES-GCM -> storage[key]
load():  storage[key] -> decrypt -> JSON -> list
         decrypt fails  -> parse raw bytes as legacy plaintext, re-save encrypted
         parse fails    -> []  (logged, never raised)

A store always writes the whole collection; there are no partial updates.
Writers hold `store.lock`; `revision` lets a reader detect a save that
happened after its load.
"""

from __future__ import annotations
from typing import Callable, Generic, List, Optional, Tuple, Type, TypeVar
import threading

from .crypto import EncryptionService
from .logger import get_logger
from .storage import StorageProvider
from .utils import dumps_list, loads_list

log = get_logger("Keybox.Store")

TOKENS_KEY = "saved_tokens_v1"
ACCOUNTS_KEY = "saved_accounts_v1"
TRASH_TOKENS_KEY = "trash_tokens_v1"
TRASH_ACCOUNTS_KEY = "trash_accounts_v1"

T = TypeVar("T")
SaveListener = Callable[[str], None]


class RecordStore(Generic[T]):
    def __init__(self, storage: StorageProvider, key: str, record_type: Type[T],
                 encryption: EncryptionService):
        self.storage = storage
        self.key = key
        self.record_type = record_type
        self.encryption = encryption
        self._listeners: List[SaveListener] = []
        # Held by every writer of this collection (repository edits, sync merges)
        self.lock = threading.RLock()
        # Bumped on every successful save
        self.revision = 0

    def add_save_listener(self, listener: SaveListener) -> None:
        """`listener(key)` runs after every notifying save."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------
    def serialize(self, records: List[T]) -> bytes:
        return dumps_list([r.to_dict() for r in records])

    def deserialize(self, data: bytes) -> List[T]:
        return [self.record_type.from_dict(d) for d in loads_list(data)]

    def decode_blob(self, blob: bytes) -> Optional[List[T]]:
        """
        Decode any blob of this collection: encrypted first, then legacy
        plaintext. Returns None when neither works.
        """
        decoded = self._decode(blob)
        return decoded[0] if decoded is not None else None

    def _decode(self, blob: bytes) -> Optional[Tuple[List[T], bool]]:
        # -> (records, was_legacy_plaintext)
        plain = self.encryption.decrypt(blob)
        if plain is not None:
            try:
                return self.deserialize(plain), False
            except (ValueError, KeyError, TypeError) as e:
                log.error(f"[STORE] {self.key}: decrypted payload unreadable: {e}")
                return None
        try:
            return self.deserialize(blob), True
        except (ValueError, KeyError, TypeError, UnicodeDecodeError):
            return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save(self, records: List[T], notify: bool = True) -> bool:
        sealed = self.encryption.encrypt(self.serialize(records))
        if sealed is None:
            log.error(f"[STORE] {self.key}: encryption failed, nothing written")
            return False
        with self.lock:
            self.storage.set(self.key, sealed)
            self.revision += 1
        log.debug(f"[STORE] saved {self.key} records={len(records)} bytes={len(sealed)}")

        if notify:
            for listener in list(self._listeners):
                try:
                    listener(self.key)
                except Exception:
                    log.exception(f"[STORE] save listener failed for {self.key}")
        return True

    def load(self) -> List[T]:
        data = self.storage.get(self.key)
        if data is None:
            return []

        decoded = self._decode(data)
        if decoded is None:
            log.warning(f"[STORE] {self.key}: blob is neither encrypted nor legacy JSON, starting empty")
            return []

        records, legacy = decoded
        if legacy:
            log.info(f"[STORE] {self.key}: upgrading legacy plaintext blob ({len(records)} records)")
            self.save(records)
        return records

    def raw(self) -> Optional[bytes]:
        return self.storage.get(self.key)

    def clear(self) -> None:
        self.storage.delete(self.key)
