# keybox_core/transport/transport_http.py
from __future__ import annotations
from typing import Optional
import requests

from keybox_core.logger import get_logger
from keybox_core.transport.transport_base import (
    BaseBlobTransport, TransportPermanentError, TransportTransientError,
)

log = get_logger("Keybox.Transport.HTTP")


class HTTPBlobTransport(BaseBlobTransport):
    """
    Blob transport against any HTTP object store exposing

        GET /blobs/{key}   -> 200 body | 404
        PUT /blobs/{key}   <- application/octet-stream

    Supports Bearer authentication. Writes are immediate, so synchronize()
    only reports reachability. Remote-change delivery is left to the caller
    (push channel or polling) via notify_external_change().
    """
    name = "http"

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token = token

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = dict(extra or {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _url(self, key: str) -> str:
        return f"{self.base_url}/blobs/{key}"

    @staticmethod
    def _raise_for(res: requests.Response, what: str) -> None:
        if res.status_code >= 500 or res.status_code == 429:
            raise TransportTransientError(f"{what}: {res.status_code} {res.reason}")
        raise TransportPermanentError(f"{what}: {res.status_code} {res.reason}")

    def get(self, key: str) -> Optional[bytes]:
        url = self._url(key)
        log.debug(f"[HTTP GET] → {url}")
        try:
            res = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportTransientError(f"GET {key}: {e}") from e

        if res.status_code == 404:
            return None
        if not res.ok:
            self._raise_for(res, f"GET {key}")
        return res.content or None

    def set(self, key: str, data: bytes) -> None:
        url = self._url(key)
        log.debug(f"[HTTP PUT] → {url} | bytes={len(data)}")
        try:
            res = self.session.put(
                url,
                data=data,
                headers=self._headers({"Content-Type": "application/octet-stream"}),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportTransientError(f"PUT {key}: {e}") from e

        if not res.ok:
            self._raise_for(res, f"PUT {key}")
        log.info(f"[HTTP PUT] {key} {res.status_code}")

    def synchronize(self) -> bool:
        try:
            res = self.session.get(f"{self.base_url}/healthz", headers=self._headers(),
                                   timeout=self.timeout)
            return res.ok
        except requests.RequestException as e:
            log.error(f"[HTTP SYNC] unreachable: {e}")
            return False

    def healthz(self) -> dict:
        return {"status": "ok" if self.synchronize() else "down", "transport": self.name}

    def close(self) -> None:
        self.session.close()
