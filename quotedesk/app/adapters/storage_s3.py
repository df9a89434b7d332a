import logging
import mimetypes
from typing import Dict, Iterator, Optional
from urllib.parse import unquote, urlsplit

from botocore.exceptions import BotoCoreError, ClientError

from quotedesk.app.core.errors import BackendUnavailable, ObjectNotFound
from quotedesk.app.core.headers import content_disposition
from quotedesk.app.ports.storage import BlobStream, IBlobStore

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _translate(exc: Exception, key: str) -> Exception:
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in _MISSING_CODES:
            return ObjectNotFound(f"Object not found: {key}", {"key": key})
    logger.error("S3 request failed for %s: %s", key, exc)
    return BackendUnavailable("Blob backend request failed", cause=exc, details={"key": key})


class S3BlobStream(BlobStream):
    def __init__(self, body, content_type: Optional[str], content_length: Optional[int]):
        self._body = body
        self.content_type = content_type or "application/octet-stream"
        self.content_length = content_length

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        for chunk in self._body.iter_chunks(chunk_size=chunk_size):
            if chunk:
                yield chunk

    def close(self) -> None:
        self._body.close()


class S3BlobStore(IBlobStore):
    def __init__(self, client, bucket_name: str):
        self.bucket_name = bucket_name
        self.s3_client = client

    def put_bytes(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc
        return key

    def _head(self, key: str) -> dict:
        try:
            return self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc

    def get_metadata(self, key: str) -> Dict[str, str]:
        return dict(self._head(key).get("Metadata") or {})

    def replace_metadata(self, key: str, metadata: Dict[str, str]) -> None:
        head = self._head(key)
        # A REPLACE copy drops system metadata that is not passed again.
        content_type = head.get("ContentType") or "application/octet-stream"
        try:
            self.s3_client.copy_object(
                Bucket=self.bucket_name,
                Key=key,
                CopySource={"Bucket": self.bucket_name, "Key": key},
                Metadata=dict(metadata),
                MetadataDirective="REPLACE",
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc

    def open_stream(self, key: str) -> S3BlobStream:
        try:
            obj = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc
        return S3BlobStream(obj["Body"], obj.get("ContentType"), obj.get("ContentLength"))

    def generate_presigned_upload_url(
        self,
        key: str,
        expiration: int = 900,
        content_type: str | None = None,
    ) -> str:
        params = {"Bucket": self.bucket_name, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        try:
            return self.s3_client.generate_presigned_url(
                "put_object",
                Params=params,
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc

    def generate_presigned_url(
        self,
        key: str,
        expiration: int = 3600,
        content_type: str | None = None,
        filename: str | None = None,
        disposition: str | None = None,
    ) -> str:
        params = {"Bucket": self.bucket_name, "Key": key}
        if content_type:
            params["ResponseContentType"] = content_type
        else:
            guess, _ = mimetypes.guess_type(filename or key)
            if guess:
                params["ResponseContentType"] = guess
        if filename:
            params["ResponseContentDisposition"] = content_disposition(filename, disposition or "attachment")
        elif disposition:
            params["ResponseContentDisposition"] = disposition
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, key) from exc

    def key_from_url(self, url: str) -> Optional[str]:
        parts = urlsplit(url)
        if parts.scheme not in {"http", "https"}:
            return None
        host = (parts.hostname or "").lower()
        endpoint_host = (urlsplit(self.s3_client.meta.endpoint_url).hostname or "").lower()
        path = unquote(parts.path)

        if host == endpoint_host:
            bucket_prefix = f"/{self.bucket_name}/"
            if not path.startswith(bucket_prefix):
                return None
            return path[len(bucket_prefix):] or None
        if host == f"{self.bucket_name}.{endpoint_host}".lower():
            return path.lstrip("/") or None
        return None
