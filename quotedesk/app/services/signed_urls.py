"""Time-bounded upload/download URLs and canonical object paths.

Uploaded objects live under ``<private_dir>/uploads/<uuid>`` in the bucket.
The rest of the application never sees bucket keys or backend URLs; it
refers to them by their canonical path ``/objects/uploads/<uuid>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit
from uuid import uuid4

from quotedesk.app.core.errors import NotFound
from quotedesk.app.ports.storage import IBlobStore

logger = logging.getLogger(__name__)

OBJECT_PATH_PREFIX = "/objects/"


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    object_path: str


class SignedUrlIssuer:
    def __init__(self, storage: IBlobStore, private_dir: str, upload_ttl_seconds: int = 900):
        self.storage = storage
        self.private_dir = private_dir.strip("/")
        self.upload_ttl_seconds = upload_ttl_seconds

    def key_for(self, object_path: str) -> str:
        """Map a canonical ``/objects/...`` path to its bucket key."""
        if not object_path.startswith(OBJECT_PATH_PREFIX):
            raise NotFound("Object not found", {"object_path": object_path})
        entity_id = object_path[len(OBJECT_PATH_PREFIX):]
        parts = entity_id.split("/")
        if not entity_id or any(p in {"", ".", ".."} for p in parts):
            raise NotFound("Object not found", {"object_path": object_path})
        return f"{self.private_dir}/{entity_id}"

    def issue_upload_url(self, requester_id: str) -> UploadTicket:
        entity_id = f"uploads/{uuid4()}"
        key = f"{self.private_dir}/{entity_id}"
        upload_url = self.storage.generate_presigned_upload_url(
            key, expiration=self.upload_ttl_seconds
        )
        object_path = OBJECT_PATH_PREFIX + entity_id
        logger.info(
            "Issued upload URL",
            extra={"principal": requester_id, "object_path": object_path},
        )
        return UploadTicket(upload_url=upload_url, object_path=object_path)

    def normalize_to_object_path(self, upload_url: str) -> str:
        """Turn a backend upload URL back into a canonical object path.

        Canonical paths pass through untouched. URLs the backend did not
        issue, or keys outside the private namespace, come back as their
        bare URL path.
        """
        if upload_url.startswith(OBJECT_PATH_PREFIX):
            return upload_url
        key = self.storage.key_from_url(upload_url)
        if key is None:
            return urlsplit(upload_url).path or upload_url
        prefix = f"{self.private_dir}/"
        if not key.startswith(prefix):
            return "/" + key.lstrip("/")
        return OBJECT_PATH_PREFIX + key[len(prefix):]

    def issue_download_url(
        self,
        object_path: str,
        ttl_seconds: int,
        filename_hint: Optional[str] = None,
    ) -> str:
        return self.storage.generate_presigned_url(
            self.key_for(object_path),
            expiration=ttl_seconds,
            filename=filename_hint,
        )
