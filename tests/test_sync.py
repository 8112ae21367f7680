# tests/test_sync.py

import threading
import pytest
from keybox_core.activity import ActivityLog
from keybox_core.clock import FixedClock
from keybox_core.crypto import EncryptionService
from keybox_core.models import ActivityType, Secret, VaultEntry
from keybox_core.record_store import ACCOUNTS_KEY, TOKENS_KEY, RecordStore
from keybox_core.storage import InMemoryStorage
from keybox_core.sync import (
    ENABLED_KEY, LAST_SYNC_KEY, SyncEngine, Upload, inline_dispatch, merge_records, thread_dispatch,
)
from keybox_core.transport import (
    BaseBlobTransport, LocalBlobBucket, LocalBlobTransport, TransportTransientError,
)
from keybox_core.utils import to_iso


def tok(id, issuer="Issuer"):
    return Secret(issuer=issuer, account_name="user", secret="JBSWY3DPEHPK3PXP", id=id)


class Device:
    """One installation: its own storage, stores and engine, sharing a bucket."""

    def __init__(self, bucket, storage=None, clock=None, dispatch=inline_dispatch):
        self.storage = storage or InMemoryStorage()
        self.clock = clock or FixedClock(1_700_000_000)
        enc = EncryptionService()
        self.tokens = RecordStore(self.storage, TOKENS_KEY, Secret, enc)
        self.accounts = RecordStore(self.storage, ACCOUNTS_KEY, VaultEntry, enc)
        self.activity = ActivityLog(self.storage, clock=self.clock)
        self.transport = LocalBlobTransport(bucket)
        self.engine = SyncEngine(self.storage, self.transport, [self.tokens, self.accounts],
                                 activity=self.activity, clock=self.clock, dispatch=dispatch)

    def token_ids(self):
        return [r.id for r in self.tokens.load()]


class CountingTransport(BaseBlobTransport):
    def __init__(self):
        super().__init__()
        self.blobs = {}
        self.gets = 0
        self.sets = 0

    def get(self, key):
        self.gets += 1
        return self.blobs.get(key)

    def set(self, key, data):
        self.sets += 1
        self.blobs[key] = data


# --------- merge_records ----------

def test_merge_is_union_and_local_wins():
    local = [tok("a"), tok("b", issuer="local-b")]
    remote = [tok("b", issuer="remote-b"), tok("c")]
    merged, inserted = merge_records(local, remote)
    assert [r.id for r in merged] == ["a", "b", "c"]
    assert merged[1].issuer == "local-b"
    assert inserted == 1


def test_merge_is_idempotent_and_keeps_local_order():
    local = [tok("z"), tok("a")]
    remote = [tok("m"), tok("a"), tok("n")]
    once, n1 = merge_records(local, remote)
    twice, n2 = merge_records(once, remote)
    assert [r.id for r in once] == ["z", "a", "m", "n"]
    assert [r.id for r in twice] == [r.id for r in once]
    assert (n1, n2) == (2, 0)
    assert merge_records([], []) == ([], 0)


# --------- two devices over a shared bucket ----------

def test_save_on_one_device_reaches_the_other():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.engine.set_enabled(True)
    b.engine.set_enabled(True)

    a.tokens.save([tok("t1")])

    assert b.token_ids() == ["t1"]
    assert a.token_ids() == ["t1"]
    assert b.activity.events[0].type is ActivityType.SYNC
    assert b.activity.events[0].message == "Data synchronized from cloud"


def test_enabling_sync_merges_both_sides():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.tokens.save([tok("a"), tok("b", issuer="A-side")])
    b.tokens.save([tok("b", issuer="B-side"), tok("c")])

    a.engine.set_enabled(True)
    b.engine.set_enabled(True)

    assert sorted(a.token_ids()) == ["a", "b", "c"]
    assert sorted(b.token_ids()) == ["a", "b", "c"]
    # same id on both sides: nobody overwrites a local copy
    assert next(r for r in a.tokens.load() if r.id == "b").issuer == "A-side"
    assert next(r for r in b.tokens.load() if r.id == "b").issuer == "B-side"
    # local order is kept, remote-only records appended
    assert a.token_ids() == ["a", "b", "c"]
    assert b.token_ids() == ["b", "c", "a"]


def test_disabled_device_ignores_remote_changes():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.engine.set_enabled(True)

    a.tokens.save([tok("t1")])
    assert b.token_ids() == []

    b.engine.handle_remote_change([TOKENS_KEY])
    assert b.token_ids() == []


def test_disabled_device_does_not_upload_on_save():
    bucket = LocalBlobBucket()
    a = Device(bucket)
    a.tokens.save([tok("t1")])
    assert bucket.blobs == {}

    a.engine.force_sync()
    assert TOKENS_KEY in bucket.blobs


def test_disable_unsubscribes_and_persists_flag():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.engine.set_enabled(True)
    b.engine.set_enabled(True)
    b.engine.set_enabled(False)
    assert b.storage.get_text(ENABLED_KEY) == "0"

    a.tokens.save([tok("t1")])
    assert b.token_ids() == []


def test_force_restore_merges_without_overwriting():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.tokens.save([tok("remote-only")])
    a.engine.force_sync()

    b.tokens.save([tok("local-only")])
    b.engine.force_restore()
    assert b.token_ids() == ["local-only", "remote-only"]


def test_remote_garbage_is_ignored():
    bucket = LocalBlobBucket()
    a = Device(bucket)
    a.tokens.save([tok("t1")])
    bucket.blobs[TOKENS_KEY] = b"not a vault blob"

    a.engine.force_restore()
    assert a.token_ids() == ["t1"]


# --------- failures ----------

def test_offline_transport_aborts_cycle_and_logs(caplog):
    bucket = LocalBlobBucket()
    a = Device(bucket)
    a.engine.set_enabled(True)
    bucket.online = False

    a.tokens.save([tok("t1")])
    assert "upload failed" in caplog.text
    assert a.engine.last_sync is None

    a.engine.force_restore()
    assert "fetch failed" in caplog.text
    assert a.token_ids() == ["t1"]

    # next trigger after reconnecting goes through
    bucket.online = True
    a.engine.force_sync()
    assert TOKENS_KEY in bucket.blobs
    assert a.engine.last_sync is not None


def test_refused_synchronize_does_not_mark_synced(caplog):
    class Refusing(CountingTransport):
        def synchronize(self):
            return False

    storage = InMemoryStorage()
    store = RecordStore(storage, TOKENS_KEY, Secret, EncryptionService())
    engine = SyncEngine(storage, Refusing(), [store], dispatch=inline_dispatch)
    store.save([tok("t1")])
    engine.force_sync()
    assert engine.last_sync is None
    assert storage.get_text(LAST_SYNC_KEY) is None
    assert "check connectivity" in caplog.text


def test_transient_error_from_transport_is_not_raised():
    class Broken(CountingTransport):
        def get(self, key):
            raise TransportTransientError("boom")

    storage = InMemoryStorage()
    store = RecordStore(storage, TOKENS_KEY, Secret, EncryptionService())
    engine = SyncEngine(storage, Broken(), [store], dispatch=inline_dispatch)
    engine.force_restore()
    assert engine.channels[TOKENS_KEY].run_cycle(check=True, upload=Upload.NEVER) == 0


# --------- engine state ----------

def test_last_sync_and_enabled_flag_survive_restart():
    storage = InMemoryStorage()
    clock = FixedClock(1_700_000_000)
    bucket = LocalBlobBucket()
    a = Device(bucket, storage=storage, clock=clock)
    a.engine.set_enabled(True)
    a.tokens.save([tok("t1")])

    assert a.engine.last_sync == clock.utcnow()
    assert storage.get_text(LAST_SYNC_KEY) == to_iso(clock.utcnow())

    again = Device(bucket, storage=storage, clock=clock)
    assert again.engine.enabled is True
    assert again.engine.last_sync == clock.utcnow()


def test_triggers_during_a_cycle_are_coalesced():
    queued = []
    storage = InMemoryStorage()
    store = RecordStore(storage, TOKENS_KEY, Secret, EncryptionService())
    transport = CountingTransport()
    engine = SyncEngine(storage, transport, [store], dispatch=queued.append)
    store.save([tok("t1")])

    engine.force_sync()
    engine.force_restore()
    engine.force_sync()
    assert len(queued) == 1  # one drain scheduled, the rest absorbed

    queued[0]()
    assert (transport.gets, transport.sets) == (1, 1)
    assert engine.wait_idle(timeout=0)


def test_listeners_hear_about_merges_only():
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    heard = []
    b.engine.add_listener(lambda key, n: heard.append((key, n)))
    a.engine.set_enabled(True)
    b.engine.set_enabled(True)
    assert heard == []

    a.tokens.save([tok("t1"), tok("t2")])
    assert heard == [(TOKENS_KEY, 2)]


def test_failing_listener_is_logged(caplog):
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)

    def boom(key, n):
        raise RuntimeError("listener exploded")

    b.engine.add_listener(boom)
    a.engine.set_enabled(True)
    b.engine.set_enabled(True)
    a.tokens.save([tok("t1")])
    assert b.token_ids() == ["t1"]
    assert "listener failed" in caplog.text


def test_thread_dispatch_runs_in_background():
    bucket = LocalBlobBucket()
    a = Device(bucket, dispatch=thread_dispatch)
    a.tokens.save([tok("t1")])
    a.engine.set_enabled(True)
    assert a.engine.wait_idle(timeout=5)
    assert TOKENS_KEY in bucket.blobs


# --------- local saves racing a merge ----------

def one_shot(monkeypatch, during_merge):
    """Patch merge_records so `during_merge()` runs once, after the first merge is computed."""
    real = merge_records
    calls = []

    def merge(local, remote):
        result = real(local, remote)
        calls.append(len(local))
        if len(calls) == 1:
            during_merge()
        return result

    monkeypatch.setattr("keybox_core.sync.merge_records", merge)
    return calls


def test_save_during_merge_is_not_lost(monkeypatch):
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.tokens.save([tok("remote-only")])
    a.engine.force_sync()
    b.tokens.save([tok("local-only")])

    calls = one_shot(monkeypatch, lambda: b.tokens.save(b.tokens.load() + [tok("added-mid-merge")]))
    b.engine.force_restore()

    assert b.token_ids() == ["local-only", "added-mid-merge", "remote-only"]
    assert calls == [1, 2]  # merged again on top of the fresh save
    assert b.tokens.revision == 3


def test_writer_on_another_thread_waits_for_merge(monkeypatch):
    bucket = LocalBlobBucket()
    a, b = Device(bucket), Device(bucket)
    a.tokens.save([tok("remote-only")])
    a.engine.force_sync()
    b.tokens.save([tok("local-only")])

    done = threading.Event()

    def writer():
        with b.tokens.lock:
            b.tokens.save(b.tokens.load() + [tok("from-thread")])
        done.set()

    worker = threading.Thread(target=writer)

    def start_writer():
        worker.start()
        assert not done.wait(timeout=0.2)  # blocked until the merge is saved

    one_shot(monkeypatch, start_writer)
    b.engine.force_restore()
    worker.join(timeout=5)

    assert done.is_set()
    assert b.token_ids() == ["local-only", "remote-only", "from-thread"]
