"""
keybox_core.trash
-----------------
Soft-delete / undo archive. Every delete, and every update that overwrites
a record, archives the pre-image here; the returned trash id is what an
ActivityEvent points at so the user can restore from the activity feed.

Tokens and accounts live in two separate encrypted collections, persisted
with the same RecordStore discipline as the live vault.
"""

from __future__ import annotations
from typing import List, Optional

from .clock import Clock, SystemClock
from .logger import get_logger
from .models import Record, Secret, TrashEntry
from .record_store import RecordStore

log = get_logger("Keybox.Trash")


class TrashLedger:
    def __init__(self, token_store: RecordStore, account_store: RecordStore,
                 max_entries: Optional[int] = None, clock: Optional[Clock] = None):
        self._stores = {"token": token_store, "account": account_store}
        self.max_entries = max_entries
        self.clock = clock or SystemClock()

    def _store_for(self, record: Record) -> RecordStore:
        return self._stores["token" if isinstance(record, Secret) else "account"]

    def entries(self, kind: Optional[str] = None) -> List[TrashEntry]:
        kinds = [kind] if kind else ["token", "account"]
        out: List[TrashEntry] = []
        for k in kinds:
            out.extend(self._stores[k].load())
        return out

    def archive(self, record: Record) -> str:
        store = self._store_for(record)
        entry = TrashEntry(record=record, deleted_at=self.clock.utcnow())
        entries = store.load()
        entries.append(entry)

        if self.max_entries is not None and len(entries) > self.max_entries:
            dropped = len(entries) - self.max_entries
            entries = entries[dropped:]
            log.info(f"[TRASH] evicted {dropped} oldest entries from {store.key}")

        store.save(entries, notify=False)
        log.debug(f"[TRASH] archived {entry.kind} {record.id} as {entry.id}")
        return entry.id

    def get(self, trash_id: str) -> Optional[TrashEntry]:
        return next((e for e in self.entries() if e.id == trash_id), None)

    def restore(self, trash_id: str) -> Optional[Record]:
        """Remove the entry and hand back its record; None if not (or no longer) present."""
        for store in self._stores.values():
            entries = store.load()
            for i, entry in enumerate(entries):
                if entry.id == trash_id:
                    del entries[i]
                    store.save(entries, notify=False)
                    log.debug(f"[TRASH] restored {entry.kind} {entry.record.id}")
                    return entry.record
        return None

    def clear(self) -> None:
        for store in self._stores.values():
            store.save([], notify=False)
