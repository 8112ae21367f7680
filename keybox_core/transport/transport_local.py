# keybox_core/transport/transport_local.py
from __future__ import annotations
import threading
from typing import Dict, List, Optional

from keybox_core.logger import get_logger
from keybox_core.transport.transport_base import BaseBlobTransport, TransportTransientError

log = get_logger("Keybox.Transport.Local")


class LocalBlobBucket:
    """Shared in-process blob space; each attached transport acts as one device."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.devices: List["LocalBlobTransport"] = []
        self.lock = threading.Lock()
        self.online = True


class LocalBlobTransport(BaseBlobTransport):
    name = "local"

    def __init__(self, bucket: Optional[LocalBlobBucket] = None):
        super().__init__()
        self.bucket = bucket or LocalBlobBucket()
        self.bucket.devices.append(self)
        self._dirty: List[str] = []

    def _check_online(self) -> None:
        if not self.bucket.online:
            raise TransportTransientError("local bucket offline")

    def get(self, key: str) -> Optional[bytes]:
        self._check_online()
        with self.bucket.lock:
            return self.bucket.blobs.get(key)

    def set(self, key: str, data: bytes) -> None:
        self._check_online()
        with self.bucket.lock:
            self.bucket.blobs[key] = bytes(data)
        if key not in self._dirty:
            self._dirty.append(key)
        log.debug(f"[LOCAL SET] {key} bytes={len(data)}")

    def synchronize(self) -> bool:
        """Deliver change notifications for keys written since the last call."""
        if not self.bucket.online:
            return False
        changed, self._dirty = self._dirty, []
        if changed:
            for peer in list(self.bucket.devices):
                if peer is not self:
                    peer.notify_external_change(changed)
        return True

    def close(self) -> None:
        if self in self.bucket.devices:
            self.bucket.devices.remove(self)
