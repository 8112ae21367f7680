"""
keybox_core.utils
-----------------
Lightweight helpers for identifiers, timestamps and compact JSON
serialization of record collections.
"""

from __future__ import annotations
import json, uuid
from datetime import datetime, timezone
from typing import Any, List, Optional


def new_id() -> str:
    return uuid.uuid4().hex

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(dt: datetime) -> str:
    # RFC3339 / ISO 8601 in UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

def from_iso(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    return datetime.fromisoformat(value.replace("Z", "+00:00"))

def dumps_list(items: List[Any]) -> bytes:
    # Compact, order preserving JSON for persisted collections
    return json.dumps(items, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

def loads_list(data: bytes) -> List[Any]:
    obj = json.loads(data.decode("utf-8"))
    if not isinstance(obj, list):
        raise ValueError(f"expected a JSON array, got {type(obj).__name__}")
    return obj
