# keybox_core/transport/__init__.py
import os
from keybox_core.transport.transport_base import (
    BaseBlobTransport, TransportError, TransportTransientError, TransportPermanentError,
)
from keybox_core.transport.transport_local import LocalBlobBucket, LocalBlobTransport
from keybox_core.transport.transport_http import HTTPBlobTransport


def transport_factory(mode: str = None, url: str = None, token: str = None) -> BaseBlobTransport:
    """
    mode (or KEYBOX_SYNC_TRANSPORT):
      - "http"  → HTTPBlobTransport(KEYBOX_SYNC_URL, KEYBOX_SYNC_TOKEN)
      - "local" → in-process LocalBlobTransport (default)
    """
    mode = (mode or os.getenv("KEYBOX_SYNC_TRANSPORT", "local")).lower()

    if mode == "http":
        return HTTPBlobTransport(
            url or os.getenv("KEYBOX_SYNC_URL", "http://localhost:8080"),
            token=token or os.getenv("KEYBOX_SYNC_TOKEN") or None,
        )

    if mode == "local":
        return LocalBlobTransport()

    raise ValueError(f"Unknown sync transport: {mode}")


__all__ = [
    "BaseBlobTransport",
    "TransportError",
    "TransportTransientError",
    "TransportPermanentError",
    "LocalBlobBucket",
    "LocalBlobTransport",
    "HTTPBlobTransport",
    "transport_factory",
]
