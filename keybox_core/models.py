# keybox_core/models.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from .clock import Clock
from .otp import (
    DEFAULT_DIGITS, DEFAULT_PERIOD, FALLBACK_CODE, generate_code, progress, seconds_remaining,
)
from .utils import new_id, utcnow, to_iso, from_iso


class AccountCategory(str, Enum):
    GAME = "Game"
    APP = "APP"
    EMAIL = "Email"
    WEBSITE = "Website"
    OTHER = "Other"


class ActivityType(str, Enum):
    ADD = "add"
    DELETE = "delete"
    UPDATE = "update"
    VIEW = "view"
    SYNC = "sync"
    SECURITY = "security"
    SYSTEM = "system"


class _IdentityMixin:
    """Records compare and hash by id only, so edits keep set/dict membership."""

    id: str

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def same_content(self, other: "_IdentityMixin") -> bool:
        return self.to_dict() == other.to_dict()


@dataclass(eq=False)
class Secret(_IdentityMixin):
    """
    An OTP credential. The current code and countdown are derived on every
    read and are never persisted.
    """
    issuer: str
    account_name: str
    secret: str
    period: float = DEFAULT_PERIOD
    digits: int = DEFAULT_DIGITS
    color_hex: Optional[str] = None
    id: str = field(default_factory=new_id)

    # Stored records are not re-validated; an unusable digits or period shows
    # the fallback code and an empty countdown.
    def current_code(self, clock: Optional[Clock] = None) -> str:
        try:
            code = generate_code(self.secret, self.period, self.digits, clock)
        except ValueError:
            return FALLBACK_CODE
        return code if code is not None else FALLBACK_CODE

    def progress(self, clock: Optional[Clock] = None) -> float:
        try:
            return progress(self.period, clock.now() if clock else None)
        except ValueError:
            return 0.0

    def seconds_remaining(self, clock: Optional[Clock] = None) -> int:
        try:
            return seconds_remaining(self.period, clock.now() if clock else None)
        except ValueError:
            return 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Secret":
        return cls(
            id=data["id"],
            issuer=data.get("issuer", ""),
            account_name=data.get("account_name", ""),
            secret=data["secret"],
            period=data.get("period", DEFAULT_PERIOD),
            digits=int(data.get("digits", DEFAULT_DIGITS)),
            color_hex=data.get("color_hex"),
        )


@dataclass(eq=False)
class VaultEntry(_IdentityMixin):
    """A password-manager record."""
    title: str
    account: str
    password: str
    note: str = ""
    category: AccountCategory = AccountCategory.OTHER
    created_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "account": self.account,
            "password": self.password,
            "note": self.note,
            "category": self.category.value,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultEntry":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            account=data.get("account", ""),
            password=data.get("password", ""),
            note=data.get("note", ""),
            category=AccountCategory(data.get("category", AccountCategory.OTHER.value)),
            created_at=from_iso(data.get("created_at")),
        )


Record = Union[Secret, VaultEntry]


@dataclass
class TrashEntry:
    """Snapshot of a deleted or overwritten record."""
    record: Record
    deleted_at: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=new_id)

    @property
    def kind(self) -> str:
        return "token" if isinstance(self.record, Secret) else "account"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "record": self.record.to_dict(),
            "deleted_at": to_iso(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrashEntry":
        record_cls = Secret if data.get("kind", "token") == "token" else VaultEntry
        return cls(
            id=data["id"],
            record=record_cls.from_dict(data["record"]),
            deleted_at=from_iso(data.get("deleted_at")),
        )


@dataclass
class ActivityEvent:
    type: ActivityType
    title: str
    message: str
    date: datetime = field(default_factory=utcnow)
    is_read: bool = False
    associated_id: Optional[str] = None  # TrashEntry id, when restorable
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["type"] = self.type.value
        d["date"] = to_iso(self.date)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityEvent":
        return cls(
            id=data["id"],
            type=ActivityType(data["type"]),
            title=data.get("title", ""),
            message=data.get("message", ""),
            date=from_iso(data.get("date")),
            is_read=bool(data.get("is_read", False)),
            associated_id=data.get("associated_id"),
        )
