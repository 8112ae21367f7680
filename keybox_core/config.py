# keybox_core/config.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import os

from .activity import MAX_EVENTS


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass
class KeyboxConfig:
    """Runtime settings, resolved from KEYBOX_* environment variables."""
    storage_provider: str = "sqlite"
    db_path: str = "db/keybox.db"
    sync_transport: str = "local"
    sync_url: str = "http://localhost:8080"
    sync_token: Optional[str] = None
    trash_max_entries: Optional[int] = None  # None = unbounded
    activity_max: int = MAX_EVENTS
    biometrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "KeyboxConfig":
        return cls(
            storage_provider=os.getenv("KEYBOX_STORAGE_PROVIDER", "sqlite"),
            db_path=os.getenv("KEYBOX_DB_PATH", "db/keybox.db"),
            sync_transport=os.getenv("KEYBOX_SYNC_TRANSPORT", "local"),
            sync_url=os.getenv("KEYBOX_SYNC_URL", "http://localhost:8080"),
            sync_token=os.getenv("KEYBOX_SYNC_TOKEN") or None,
            trash_max_entries=_int_env("KEYBOX_TRASH_MAX_ENTRIES"),
            activity_max=_int_env("KEYBOX_ACTIVITY_MAX") or MAX_EVENTS,
            biometrics_enabled=os.getenv("KEYBOX_BIOMETRICS", "1") == "1",
        )

    def storage_config(self) -> dict:
        return {"provider": self.storage_provider, "sqlite_path": self.db_path}
