"""Request-facing access to stored objects.

Every private read goes through the same sequence: load the object's
metadata, decode its policy, run the permission check, and only then open a
stream or sign a URL. Upload URLs are handed out without a policy; the
policy is attached once the client reports the upload finished.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, Optional, Sequence

from quotedesk.app.core.errors import (
    NoPolicy,
    NotFound,
    ObjectAccessDenied,
    ObjectNotFound,
    ValidationError,
)
from quotedesk.app.core.headers import content_disposition
from quotedesk.app.ports.membership import IMembershipChecker
from quotedesk.app.ports.storage import BlobStream, IBlobStore
from quotedesk.app.services.object_acl import (
    AccessRule,
    ObjectPolicy,
    Permission,
    Visibility,
    decode_policy,
    encode_policy,
)
from quotedesk.app.services.permissions import check_access
from quotedesk.app.services.signed_urls import OBJECT_PATH_PREFIX, SignedUrlIssuer, UploadTicket

logger = logging.getLogger(__name__)


class ObjectStream:
    """A permission-checked object body, read in bounded chunks.

    The backend stream is released when iteration finishes, fails, or when
    :meth:`close` is called on an abandoned stream, whichever happens first.
    """

    def __init__(
        self,
        blob: BlobStream,
        chunk_size: int,
        cache_control: str,
        filename: Optional[str] = None,
    ):
        self._blob = blob
        self._closed = False
        self._lock = threading.Lock()
        self.chunk_size = chunk_size
        self.cache_control = cache_control
        self.filename = filename

    @property
    def content_type(self) -> str:
        return self._blob.content_type

    @property
    def content_length(self) -> Optional[int]:
        return self._blob.content_length

    @property
    def closed(self) -> bool:
        return self._closed

    def headers(self) -> Dict[str, str]:
        headers = {"Cache-Control": self.cache_control}
        if self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)
        if self.filename:
            headers["Content-Disposition"] = content_disposition(self.filename)
        return headers

    def iter_chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self._blob.iter_chunks(self.chunk_size):
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._blob.close()


class ObjectAccessGateway:
    def __init__(
        self,
        storage: IBlobStore,
        issuer: SignedUrlIssuer,
        membership: IMembershipChecker,
        public_search_paths: Sequence[str] = (),
        chunk_size: int = 64 * 1024,
        public_ttl_seconds: int = 3600,
    ):
        self.storage = storage
        self.issuer = issuer
        self.membership = membership
        self.public_search_paths = [p.strip("/") for p in public_search_paths if p.strip("/")]
        self.chunk_size = chunk_size
        self.public_ttl_seconds = public_ttl_seconds

    def request_upload(self, requester_id: str) -> UploadTicket:
        return self.issuer.issue_upload_url(requester_id)

    def attach_policy_after_upload(
        self,
        upload_url: str,
        owner_id: str,
        visibility: Visibility | str = Visibility.PRIVATE,
        rules: Sequence[AccessRule] = (),
    ) -> str:
        object_path = self.issuer.normalize_to_object_path(upload_url)
        if not object_path.startswith(OBJECT_PATH_PREFIX):
            raise ValidationError("Upload URL does not point at an uploaded object", {"object_path": object_path})

        policy = ObjectPolicy.build(owner_id, visibility, rules)
        key = self.issuer.key_for(object_path)
        self._authorize_replace(key, object_path, owner_id)
        try:
            self.storage.replace_metadata(key, encode_policy(policy))
        except Exception:
            logger.error(
                "Failed to attach ACL policy; object is unprotected until retried",
                extra={"principal": owner_id, "object_path": object_path},
            )
            raise
        logger.info(
            "Attached ACL policy visibility=%s rules=%d",
            policy.visibility.value,
            len(policy.rules),
            extra={"principal": owner_id, "object_path": object_path},
        )
        return object_path

    def _authorize_replace(self, key: str, object_path: str, requester_id: str) -> None:
        """A fresh upload takes any policy; an existing one needs WRITE to replace."""
        try:
            existing = decode_policy(self.storage.get_metadata(key))
        except NoPolicy:
            return
        if not check_access(existing, requester_id, Permission.WRITE, self.membership):
            logger.warning(
                "Denied ACL policy replacement",
                extra={"principal": requester_id, "object_path": object_path},
            )
            raise ObjectAccessDenied("Object access denied")

    def _authorize(
        self,
        object_path: str,
        requester_id: Optional[str],
        requested_permission: Permission,
    ) -> str:
        key = self.issuer.key_for(object_path)
        metadata = self.storage.get_metadata(key)
        try:
            policy = decode_policy(metadata)
        except NoPolicy:
            logger.warning(
                "Object has no ACL policy; denying",
                extra={"principal": requester_id or "-", "object_path": object_path},
            )
            raise ObjectAccessDenied("Object access denied") from None

        if not check_access(policy, requester_id, requested_permission, self.membership):
            logger.info(
                "Denied %s access",
                requested_permission.value,
                extra={"principal": requester_id or "-", "object_path": object_path},
            )
            raise ObjectAccessDenied("Object access denied")
        return key

    def resolve_and_stream(
        self,
        object_path: str,
        requester_id: Optional[str],
        requested_permission: Permission = Permission.READ,
        ttl_seconds: int = 3600,
        filename_hint: Optional[str] = None,
    ) -> ObjectStream:
        key = self._authorize(object_path, requester_id, requested_permission)
        blob = self.storage.open_stream(key)
        return ObjectStream(
            blob,
            chunk_size=self.chunk_size,
            cache_control=f"private, max-age={int(ttl_seconds)}",
            filename=filename_hint,
        )

    def issue_download_url_for(
        self,
        object_path: str,
        requester_id: Optional[str],
        ttl_seconds: int = 3600,
        filename_hint: Optional[str] = None,
    ) -> str:
        self._authorize(object_path, requester_id, Permission.READ)
        return self.issuer.issue_download_url(object_path, ttl_seconds, filename_hint)

    def resolve_public(self, object_path: str) -> ObjectStream:
        relative = object_path.lstrip("/")
        parts = relative.split("/")
        if not relative or any(p in {"", ".", ".."} for p in parts):
            raise NotFound("Object not found", {"object_path": object_path})

        for search_path in self.public_search_paths:
            key = f"{search_path}/{relative}"
            try:
                blob = self.storage.open_stream(key)
            except ObjectNotFound:
                continue
            return ObjectStream(
                blob,
                chunk_size=self.chunk_size,
                cache_control=f"public, max-age={self.public_ttl_seconds}",
            )
        raise NotFound("Object not found", {"object_path": object_path})
