from __future__ import annotations

from typing import Optional

from quotedesk.app.ports.storage import IBlobStore

_storage_service: Optional[IBlobStore] = None


def set_storage_service(service: Optional[IBlobStore]) -> None:
    global _storage_service
    _storage_service = service


def get_storage_service() -> IBlobStore:
    if _storage_service is None:
        raise RuntimeError("Storage service is not configured")
    return _storage_service
