"""
keybox_core.sync
----------------
Opportunistic cloud sync of the tokens and accounts collections.

Each collection has its own channel running the cycle

    IDLE -> CHECKING -> MERGING -> UPLOADING -> IDLE

Merging is a union by record id where the local copy always wins: remote
records are only ever *added*, never allowed to overwrite a local id. The
cycle is idempotent, so nothing is persisted mid-cycle; a crash just means
the next trigger checks again.

A channel runs one cycle at a time. Triggers that arrive while a cycle is in
flight are coalesced into a single follow-up run. Transport failures are
logged and abort the cycle without retry; the next trigger retries.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import threading

from .activity import ActivityLog
from .clock import Clock, SystemClock
from .logger import get_logger
from .models import ActivityType
from .record_store import RecordStore
from .storage import StorageProvider
from .transport import BaseBlobTransport, TransportError
from .utils import from_iso, to_iso

log = get_logger("Keybox.Sync")

ENABLED_KEY = "isCloudSyncEnabled"
LAST_SYNC_KEY = "lastSyncDate"

Dispatcher = Callable[[Callable[[], None]], None]
SyncListener = Callable[[str, int], None]


class SyncState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    MERGING = "merging"
    UPLOADING = "uploading"


class Upload(IntEnum):
    NEVER = 0
    IF_MERGED = 1
    ALWAYS = 2


def thread_dispatch(fn: Callable[[], None]) -> None:
    threading.Thread(target=fn, daemon=True).start()


def inline_dispatch(fn: Callable[[], None]) -> None:
    fn()


def merge_records(local: List, remote: Iterable) -> Tuple[List, int]:
    """
    Union by id, local wins. Local order is kept; remote-only records are
    appended in remote order. Returns (merged, number_inserted).
    """
    merged = list(local)
    seen = {r.id for r in merged}
    inserted = 0
    for record in remote:
        if record.id not in seen:
            merged.append(record)
            seen.add(record.id)
            inserted += 1
    return merged, inserted


@dataclass
class _Request:
    check: bool = False
    upload: Upload = Upload.NEVER

    def absorb(self, other: "_Request") -> None:
        self.check = self.check or other.check
        self.upload = max(self.upload, other.upload)


class SyncChannel:
    """One collection's sync state machine."""

    def __init__(self, engine: "SyncEngine", store: RecordStore):
        self.engine = engine
        self.store = store
        self.key = store.key
        self.state = SyncState.IDLE
        self._guard = threading.Lock()
        self._running = False
        self._pending: Optional[_Request] = None
        self.idle = threading.Event()
        self.idle.set()

    def trigger(self, request: _Request) -> None:
        with self._guard:
            if self._pending is None:
                self._pending = request
            else:
                self._pending.absorb(request)
            if self._running:
                log.debug(f"[SYNC] {self.key}: cycle in flight, coalescing trigger")
                return
            self._running = True
            self.idle.clear()
        self.engine.dispatch(self._drain)

    def _drain(self) -> None:
        while True:
            with self._guard:
                request, self._pending = self._pending, None
                if request is None:
                    self._running = False
                    self.idle.set()
                    return
            try:
                self.run_cycle(request.check, request.upload)
            except Exception:
                log.exception(f"[SYNC] {self.key}: cycle crashed")
            finally:
                self.state = SyncState.IDLE

    def run_cycle(self, check: bool, upload: Upload) -> int:
        """One pass; returns the number of remote records merged in."""
        transport = self.engine.transport
        inserted = 0

        if check:
            self.state = SyncState.CHECKING
            try:
                remote_blob = transport.get(self.key)
            except TransportError as e:
                log.error(f"[SYNC] {self.key}: fetch failed, aborting cycle: {e}")
                return 0

            remote = self.store.decode_blob(remote_blob) if remote_blob else None
            if remote:
                self.state = SyncState.MERGING
                inserted = self._merge(remote)
            else:
                log.debug(f"[SYNC] {self.key}: nothing in cloud")

        if upload is Upload.ALWAYS or (upload is Upload.IF_MERGED and inserted):
            self.state = SyncState.UPLOADING
            self._upload()
        return inserted

    def _merge(self, remote: List) -> int:
        # Load, merge, save and reload under the collection lock; a save that
        # slips in on this thread while merging forces a fresh merge.
        with self.store.lock:
            while True:
                local = self.store.load()
                revision = self.store.revision
                merged, inserted = merge_records(local, remote)
                if self.store.revision == revision:
                    break
                log.debug(f"[SYNC] {self.key}: local data changed while merging, retrying")

            if not inserted:
                log.info(f"[SYNC] {self.key}: no new data merged from cloud")
                return 0
            self.store.save(merged, notify=False)
            log.info(f"[SYNC] {self.key}: merged {inserted} record(s) from cloud")
            self.engine._merged(self.key, inserted)
        return inserted

    def _upload(self) -> bool:
        transport = self.engine.transport
        blob = self.store.raw()
        if blob is None:
            log.debug(f"[SYNC] {self.key}: no local data to upload")
            return True
        try:
            transport.set(self.key, blob)
            ok = transport.synchronize()
        except TransportError as e:
            log.error(f"[SYNC] {self.key}: upload failed, aborting cycle: {e}")
            return False

        if ok:
            log.info(f"[SYNC] {self.key}: uploaded {len(blob)} bytes")
            self.engine._mark_synced()
        else:
            log.warning(f"[SYNC] {self.key}: upload trigger FAILED, check connectivity")
        return ok


class SyncEngine:
    def __init__(self, storage: StorageProvider, transport: BaseBlobTransport,
                 stores: List[RecordStore], activity: Optional[ActivityLog] = None,
                 clock: Optional[Clock] = None, dispatch: Dispatcher = thread_dispatch):
        self.storage = storage
        self.transport = transport
        self.activity = activity
        self.clock = clock or SystemClock()
        self.dispatch = dispatch
        self.channels: Dict[str, SyncChannel] = {}
        self._listeners: List[SyncListener] = []

        for store in stores:
            self.channels[store.key] = SyncChannel(self, store)
            store.add_save_listener(self.request_upload)

        self.enabled = self.storage.get_text(ENABLED_KEY) == "1"
        last = self.storage.get_text(LAST_SYNC_KEY)
        self.last_sync: Optional[datetime] = from_iso(last) if last else None

        if self.enabled:
            self.transport.subscribe(self.handle_remote_change)

    def add_listener(self, listener: SyncListener) -> None:
        """`listener(key, inserted)` runs after remote records were merged into `key`."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        self.storage.set_text(ENABLED_KEY, "1" if enabled else "0")
        if not enabled:
            self.transport.unsubscribe(self.handle_remote_change)
            log.info("[SYNC] disabled, observer removed")
            return

        self.transport.subscribe(self.handle_remote_change)
        log.info("[SYNC] enabled, checking cloud and uploading local data")
        for channel in self.channels.values():
            channel.trigger(_Request(check=True, upload=Upload.ALWAYS))

    def request_upload(self, key: str) -> None:
        """Local save hook: push the freshly written blob."""
        if not self.enabled:
            log.debug(f"[SYNC] upload of {key} skipped, cloud sync is disabled")
            return
        channel = self.channels.get(key)
        if channel:
            channel.trigger(_Request(upload=Upload.ALWAYS))

    def handle_remote_change(self, keys: Optional[List[str]] = None) -> None:
        if not self.enabled:
            return
        log.info(f"[SYNC] cloud data changed: {keys or 'all'}")
        for key, channel in self.channels.items():
            if keys is None or key in keys:
                channel.trigger(_Request(check=True, upload=Upload.IF_MERGED))

    def force_sync(self) -> None:
        """Upload every collection even while sync is disabled."""
        for channel in self.channels.values():
            channel.trigger(_Request(upload=Upload.ALWAYS))

    def force_restore(self) -> None:
        """Merge from the cloud now (never a blind overwrite)."""
        for channel in self.channels.values():
            channel.trigger(_Request(check=True, upload=Upload.IF_MERGED))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return all(ch.idle.wait(timeout) for ch in self.channels.values())

    # ------------------------------------------------------------------
    # Cycle callbacks
    # ------------------------------------------------------------------
    def _mark_synced(self) -> None:
        self.last_sync = self.clock.utcnow()
        self.storage.set_text(LAST_SYNC_KEY, to_iso(self.last_sync))

    def _merged(self, key: str, inserted: int) -> None:
        if self.activity is not None:
            self.activity.add(ActivityType.SYNC, "Cloud Sync", "Data synchronized from cloud")
        for listener in list(self._listeners):
            try:
                listener(key, inserted)
            except Exception:
                log.exception(f"[SYNC] listener failed for {key}")
