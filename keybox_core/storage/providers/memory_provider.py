from typing import Dict, List, Optional
from keybox_core.storage.provider import StorageProvider

class InMemoryStorage(StorageProvider):
    def __init__(self):
        self.values: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self.values.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.values[key] = bytes(value)

    def delete(self, key: str) -> None:
        self.values.pop(key, None)

    def keys(self) -> List[str]:
        return list(self.values)
