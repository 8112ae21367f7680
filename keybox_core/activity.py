"""
keybox_core.activity
--------------------
Append-only activity feed (what the app shows as notifications): newest
first, capped at the most recent `max_events`. Stored as plaintext JSON;
events never carry secret material.
"""

from __future__ import annotations
from typing import List, Optional

from .clock import Clock, SystemClock
from .logger import get_logger
from .models import ActivityEvent, ActivityType
from .storage import StorageProvider
from .utils import dumps_list, loads_list

log = get_logger("Keybox.Activity")

ACTIVITY_KEY = "app_notifications_v1"
MAX_EVENTS = 100


class ActivityLog:
    def __init__(self, storage: StorageProvider, max_events: int = MAX_EVENTS,
                 clock: Optional[Clock] = None):
        self.storage = storage
        self.max_events = max_events
        self.clock = clock or SystemClock()
        self.events: List[ActivityEvent] = self._load()

    def _load(self) -> List[ActivityEvent]:
        data = self.storage.get(ACTIVITY_KEY)
        if data is None:
            return []
        try:
            return [ActivityEvent.from_dict(d) for d in loads_list(data)]
        except (ValueError, KeyError, TypeError):
            log.warning("[ACTIVITY] stored feed unreadable, starting empty")
            return []

    def _save(self) -> None:
        self.storage.set(ACTIVITY_KEY, dumps_list([e.to_dict() for e in self.events]))

    def add(self, type: ActivityType, title: str, message: str,
            associated_id: Optional[str] = None) -> ActivityEvent:
        event = ActivityEvent(type=ActivityType(type), title=title, message=message,
                              date=self.clock.utcnow(), associated_id=associated_id)
        self.events.insert(0, event)
        del self.events[self.max_events:]
        self._save()
        log.info(f"[ACTIVITY] {event.type.value}: {title}")
        return event

    @property
    def unread_count(self) -> int:
        return sum(1 for e in self.events if not e.is_read)

    def mark_all_read(self) -> None:
        for e in self.events:
            e.is_read = True
        self._save()

    def delete(self, event_id: str) -> bool:
        before = len(self.events)
        self.events = [e for e in self.events if e.id != event_id]
        if len(self.events) == before:
            return False
        self._save()
        return True

    def clear(self) -> None:
        self.events = []
        self._save()
