"""
keybox_core.vault
-----------------
CRUD repositories over the two live collections, and the `Keybox` facade
that wires every service together.

Repositories keep the loaded list in memory and write the whole list back
through their RecordStore on every change, holding the store lock so a
cloud merge never interleaves with an edit.
Destructive changes archive the previous version in the TrashLedger first,
and every change appends one ActivityEvent. Unknown ids are a no-op that
returns None.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Generic, List, Optional, Tuple, TypeVar

from . import base32
from .activity import ActivityLog
from .auth import Authorizer, BiometricGate, StaticAuthorizer
from .clock import Clock, SystemClock
from .config import KeyboxConfig
from .crypto import EncryptionService
from .logger import get_logger
from .models import AccountCategory, ActivityType, Record, Secret, TrashEntry, VaultEntry
from .otp import DEFAULT_DIGITS, DEFAULT_PERIOD, MAX_DIGITS, OTPUriError, parse_otpauth_uri
from .record_store import (
    ACCOUNTS_KEY, TOKENS_KEY, TRASH_ACCOUNTS_KEY, TRASH_TOKENS_KEY, RecordStore,
)
from .storage import StorageProvider, load_storage_provider
from .sync import Dispatcher, SyncEngine, thread_dispatch
from .transport import BaseBlobTransport, transport_factory
from .trash import TrashLedger

log = get_logger("Keybox.Vault")

R = TypeVar("R", Secret, VaultEntry)


class RecordRepository(Generic[R]):
    noun = "Record"

    def __init__(self, store: RecordStore, trash: TrashLedger, activity: ActivityLog):
        self.store = store
        self.trash = trash
        self.activity = activity
        self.items: List[R] = store.load()

    # --- helpers ---
    def label(self, record: R) -> str:
        raise NotImplementedError

    def matches(self, record: R, text: str) -> bool:
        raise NotImplementedError

    def _index(self, record_id: str) -> Optional[int]:
        return next((i for i, r in enumerate(self.items) if r.id == record_id), None)

    def _save(self) -> None:
        self.store.save(self.items)

    def _event(self, type: ActivityType, verb: str, record: R,
               associated_id: Optional[str] = None) -> None:
        self.activity.add(type, f"{verb} {self.noun}", f"{verb} account {self.label(record)}",
                          associated_id=associated_id)

    # --- queries ---
    def get(self, record_id: str) -> Optional[R]:
        i = self._index(record_id)
        return self.items[i] if i is not None else None

    def search(self, text: str = "") -> List[R]:
        if not text:
            return list(self.items)
        needle = text.casefold()
        return [r for r in self.items if self.matches(r, needle)]

    def reload(self) -> None:
        with self.store.lock:
            self.items = self.store.load()

    # --- mutations ---
    # Each edit holds the store lock from list change to save, so a cloud
    # merge sees either none or all of it.
    def add(self, record: R) -> R:
        with self.store.lock:
            self.items.append(record)
            self._save()
        self._event(ActivityType.ADD, "Added", record)
        return record

    def update(self, record: R) -> Optional[str]:
        """Replace by id; returns the trash id of the archived pre-image."""
        with self.store.lock:
            i = self._index(record.id)
            if i is None:
                log.debug(f"[VAULT] update of unknown {self.noun.lower()} {record.id} ignored")
                return None
            trash_id = self.trash.archive(self.items[i])
            self.items[i] = record
            self._save()
        self._event(ActivityType.UPDATE, "Updated", record, associated_id=trash_id)
        return trash_id

    def delete(self, record_id: str) -> Optional[str]:
        """Remove by id; returns the trash id the record was archived under."""
        with self.store.lock:
            i = self._index(record_id)
            if i is None:
                log.debug(f"[VAULT] delete of unknown {self.noun.lower()} {record_id} ignored")
                return None
            record = self.items.pop(i)
            self._save()
        trash_id = self.trash.archive(record)
        self._event(ActivityType.DELETE, "Deleted", record, associated_id=trash_id)
        return trash_id

    def restore(self, record: R) -> R:
        """Re-insert a record taken out of the trash: overwrite if present, else append."""
        with self.store.lock:
            i = self._index(record.id)
            if i is not None:
                self.items[i] = record
            else:
                self.items.append(record)
            self._save()
        if i is not None:
            self._event(ActivityType.UPDATE, "Restored", record)
        else:
            self._event(ActivityType.ADD, "Restored", record)
        return record

    def reset(self) -> None:
        with self.store.lock:
            self.items = []
            self._save()


class TokenRepository(RecordRepository[Secret]):
    noun = "Token"

    def label(self, record: Secret) -> str:
        return f"{record.issuer} ({record.account_name})"

    def matches(self, record: Secret, needle: str) -> bool:
        return needle in record.issuer.casefold() or needle in record.account_name.casefold()

    def add_token(self, issuer: str, account_name: str, secret: str,
                  period: float = DEFAULT_PERIOD, digits: int = DEFAULT_DIGITS) -> Optional[Secret]:
        clean = secret.strip().upper()
        if not clean or base32.decode(clean) is None:
            log.warning(f"[VAULT] rejected token for {issuer!r}: secret is not valid Base32")
            return None
        if not 1 <= digits <= MAX_DIGITS or period <= 0:
            log.warning(f"[VAULT] rejected token for {issuer!r}: digits={digits} period={period}")
            return None
        return self.add(Secret(issuer=issuer, account_name=account_name, secret=clean,
                               period=period, digits=digits))


class AccountRepository(RecordRepository[VaultEntry]):
    noun = "Account"

    def label(self, record: VaultEntry) -> str:
        return f"{record.title} ({record.account})"

    def matches(self, record: VaultEntry, needle: str) -> bool:
        return needle in record.title.casefold() or needle in record.account.casefold()

    def add_account(self, title: str, account: str, password: str, note: str = "",
                    category: AccountCategory = AccountCategory.OTHER) -> VaultEntry:
        return self.add(VaultEntry(title=title, account=account, password=password,
                                   note=note, category=AccountCategory(category)))

    def by_category(self, category: Optional[AccountCategory] = None,
                    text: str = "") -> List[VaultEntry]:
        found = self.search(text)
        if category is None:
            return found
        return [r for r in found if r.category == category]


@dataclass
class CodeView:
    token: Secret
    code: str
    progress: float


class Keybox:
    """
    Application facade. Every collaborator is passed in explicitly; the
    `from_config` constructor builds the default graph.
    """

    def __init__(self, storage: StorageProvider, transport: BaseBlobTransport,
                 encryption: Optional[EncryptionService] = None,
                 authorizer: Optional[Authorizer] = None,
                 config: Optional[KeyboxConfig] = None,
                 clock: Optional[Clock] = None,
                 dispatch: Dispatcher = thread_dispatch):
        self.config = config or KeyboxConfig()
        self.clock = clock or SystemClock()
        self.storage = storage
        self.encryption = encryption or EncryptionService()

        self.token_store = RecordStore(storage, TOKENS_KEY, Secret, self.encryption)
        self.account_store = RecordStore(storage, ACCOUNTS_KEY, VaultEntry, self.encryption)
        self.activity = ActivityLog(storage, self.config.activity_max, clock=self.clock)
        self.trash = TrashLedger(
            RecordStore(storage, TRASH_TOKENS_KEY, TrashEntry, self.encryption),
            RecordStore(storage, TRASH_ACCOUNTS_KEY, TrashEntry, self.encryption),
            max_entries=self.config.trash_max_entries,
            clock=self.clock,
        )
        self.sync = SyncEngine(storage, transport, [self.token_store, self.account_store],
                               activity=self.activity, clock=self.clock, dispatch=dispatch)
        self.tokens = TokenRepository(self.token_store, self.trash, self.activity)
        self.accounts = AccountRepository(self.account_store, self.trash, self.activity)
        self.gate = BiometricGate(authorizer or StaticAuthorizer(True),
                                  enabled=self.config.biometrics_enabled, activity=self.activity)

        self.sync.add_listener(self._on_cloud_merge)

    @classmethod
    def from_config(cls, config: Optional[KeyboxConfig] = None,
                    authorizer: Optional[Authorizer] = None, **kwargs) -> "Keybox":
        config = config or KeyboxConfig.from_env()
        storage = load_storage_provider(config.storage_config())
        transport = transport_factory(config.sync_transport, config.sync_url, config.sync_token)
        return cls(storage, transport, authorizer=authorizer, config=config, **kwargs)

    def _on_cloud_merge(self, key: str, inserted: int) -> None:
        if key == TOKENS_KEY:
            self.tokens.reload()
        elif key == ACCOUNTS_KEY:
            self.accounts.reload()

    # ------------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------------
    def add_token_from_uri(self, uri: str) -> Tuple[Optional[Secret], Optional[str]]:
        """Ingest a scanned otpauth URI -> (token, None) or (None, user-facing error)."""
        try:
            parsed = parse_otpauth_uri(uri)
        except OTPUriError as e:
            log.warning(f"[VAULT] rejected otpauth URI: {e}")
            return None, str(e)
        token = self.tokens.add_token(parsed.issuer, parsed.account_name, parsed.secret)
        if token is None:
            return None, "Invalid secret in QR Code."
        return token, None

    def codes(self, text: str = "") -> List[CodeView]:
        return [CodeView(t, t.current_code(self.clock), t.progress(self.clock))
                for t in self.tokens.search(text)]

    async def reveal_secret(self, token_id: str) -> Optional[str]:
        token = self.tokens.get(token_id)
        if token is None:
            return None

        def _reveal() -> str:
            self.activity.add(ActivityType.VIEW, "Viewed Secret",
                              f"Viewed secret for account {self.tokens.label(token)}")
            return token.secret

        return await self.gate.run("Authenticate to view secret", _reveal)

    # ------------------------------------------------------------------
    # Password vault
    # ------------------------------------------------------------------
    async def reveal_password(self, account_id: str, reason: str = "Authenticate to view password") -> Optional[str]:
        entry = self.accounts.get(account_id)
        if entry is None:
            return None

        def _reveal() -> str:
            self.activity.add(ActivityType.VIEW, "Viewed Password",
                              f"Viewed password for account {self.accounts.label(entry)}")
            return entry.password

        return await self.gate.run(reason, _reveal)

    async def copy_password(self, account_id: str) -> Optional[str]:
        # The clipboard itself is the caller's business
        return await self.reveal_password(account_id, reason="Authenticate to copy password")

    async def save_account(self, entry: VaultEntry) -> Optional[str]:
        return await self.gate.run("Authenticate to save changes",
                                   lambda: self.accounts.update(entry))

    async def delete_account(self, account_id: str) -> Optional[str]:
        return await self.gate.run("Authenticate to delete account",
                                   lambda: self.accounts.delete(account_id))

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------
    def restore_from_trash(self, trash_id: str) -> Optional[Record]:
        record = self.trash.restore(trash_id)
        if record is None:
            return None
        if isinstance(record, Secret):
            return self.tokens.restore(record)
        return self.accounts.restore(record)

    async def restore(self, trash_id: str) -> Optional[Record]:
        return await self.gate.run("Authenticate to restore data",
                                   lambda: self.restore_from_trash(trash_id))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    async def set_sync_enabled(self, enabled: bool) -> bool:
        granted = await self.gate.authorize("Authenticate to toggle cloud sync")
        if not granted:
            return False
        self.sync.set_enabled(enabled)
        self.activity.add(ActivityType.SYNC, "Cloud Sync",
                          "Cloud Sync Enabled" if enabled else "Cloud Sync Disabled")
        return True

    def set_biometrics_enabled(self, enabled: bool) -> None:
        self.gate.enabled = enabled
        self.activity.add(ActivityType.SECURITY, "Security Alert",
                          "Biometrics Enabled" if enabled else "Biometrics Disabled")

    def reset_all_data(self) -> None:
        self.token_store.clear()
        self.account_store.clear()
        self.tokens.reset()
        self.accounts.reset()
        self.activity.add(ActivityType.SECURITY, "Data Reset",
                          "All data has been successfully reset.")

    async def reset(self) -> bool:
        if not await self.gate.authorize("Authenticate to reset all data"):
            return False
        self.reset_all_data()
        return True
