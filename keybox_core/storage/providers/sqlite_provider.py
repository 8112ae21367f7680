from __future__ import annotations
from typing import List, Optional
import sqlite3, os
from keybox_core.storage.provider import StorageProvider
from keybox_core.utils import to_iso, utcnow


class SQLiteStorage(StorageProvider):
    def __init__(self, path="db/keybox.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.db = sqlite3.connect(path, check_same_thread=False)

        self._init()

    def _init(self) -> None:
        self.db.execute("""CREATE TABLE IF NOT EXISTS kv(
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL,
            updated_at TEXT NOT NULL
        )""")
        self.db.commit()

    def get(self, key: str) -> Optional[bytes]:
        cur = self.db.execute("SELECT value FROM kv WHERE key=?", (key,))
        row = cur.fetchone()
        if not row: return None
        return bytes(row[0])

    def set(self, key: str, value: bytes) -> None:
        self.db.execute(
            "INSERT INTO kv(key,value,updated_at) VALUES(?,?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
            (key, sqlite3.Binary(value), to_iso(utcnow()))
        )
        self.db.commit()

    def delete(self, key: str) -> None:
        self.db.execute("DELETE FROM kv WHERE key=?", (key,))
        self.db.commit()

    def keys(self) -> List[str]:
        cur = self.db.execute("SELECT key FROM kv ORDER BY key")
        return [r[0] for r in cur.fetchall()]

    def close(self):
        self.db.close()
