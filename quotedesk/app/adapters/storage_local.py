import hashlib
import hmac
import json
import mimetypes
import os
import secrets
import time
from pathlib import Path
from typing import Dict, Iterator, Optional
from urllib.parse import quote, unquote, urlsplit

from quotedesk.app.core.errors import ObjectNotFound
from quotedesk.app.ports.storage import BlobStream, IBlobStore

LOCAL_URL_PREFIX = "/local-objects/"
_META_DIR = ".meta"


class LocalBlobStream(BlobStream):
    def __init__(self, path: Path, content_type: str):
        self._fh = open(path, "rb")
        self.content_type = content_type
        self.content_length = path.stat().st_size

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        while True:
            chunk = self._fh.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        self._fh.close()


class LocalBlobStore(IBlobStore):
    """Filesystem blob store for development and tests.

    Object bodies live under ``root_dir/<key>``; content type and user
    metadata live in a JSON sidecar under ``root_dir/.meta/<key>.json``.
    Presigned URLs are ``/local-objects/<key>`` paths carrying an expiry and
    an HMAC signature; the app serves them itself.
    """

    def __init__(self, root_dir: str, signing_secret: Optional[str] = None):
        self.root_dir = Path(root_dir).resolve()
        # Without a configured secret, URLs only survive this process.
        self._signing_secret = (signing_secret or secrets.token_hex(32)).encode("utf-8")
        os.makedirs(self.root_dir, exist_ok=True)

    def _object_path(self, key: str) -> Path:
        path = (self.root_dir / key.lstrip("/")).resolve()
        if not str(path).startswith(str(self.root_dir) + os.sep):
            raise ObjectNotFound(f"Object not found: {key}", {"key": key})
        return path

    def _sidecar_path(self, key: str) -> Path:
        return self.root_dir / _META_DIR / f"{key.lstrip('/')}.json"

    def _read_sidecar(self, key: str) -> dict:
        sidecar = self._sidecar_path(key)
        if not sidecar.exists():
            return {}
        return json.loads(sidecar.read_text(encoding="utf-8"))

    def _write_sidecar(self, key: str, payload: dict) -> None:
        sidecar = self._sidecar_path(key)
        sidecar.parent.mkdir(parents=True, exist_ok=True)
        sidecar.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    def put_bytes(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        dest = self._object_path(key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        # A fresh write starts without user metadata, like a new S3 PUT.
        self._write_sidecar(key, {"content_type": content_type, "metadata": {}})
        return key

    def _require(self, key: str) -> Path:
        path = self._object_path(key)
        if not path.is_file():
            raise ObjectNotFound(f"Object not found: {key}", {"key": key})
        return path

    def get_metadata(self, key: str) -> Dict[str, str]:
        self._require(key)
        return dict(self._read_sidecar(key).get("metadata") or {})

    def replace_metadata(self, key: str, metadata: Dict[str, str]) -> None:
        self._require(key)
        payload = self._read_sidecar(key)
        payload["metadata"] = {str(k).lower(): str(v) for k, v in metadata.items()}
        self._write_sidecar(key, payload)

    def open_stream(self, key: str) -> LocalBlobStream:
        path = self._require(key)
        content_type = self._read_sidecar(key).get("content_type")
        if not content_type:
            guess, _ = mimetypes.guess_type(str(path))
            content_type = guess or "application/octet-stream"
        return LocalBlobStream(path, content_type)

    def _sign(self, key: str, method: str, expires: int) -> str:
        data = f"{method.upper()}\n{key.lstrip('/')}\n{int(expires)}".encode("utf-8")
        return hmac.new(self._signing_secret, data, hashlib.sha256).hexdigest()

    def verify_presigned(self, key: str, method: str, expires: int, signature: str) -> bool:
        if int(expires) < time.time():
            return False
        expected = self._sign(key, method, expires).encode("utf-8")
        return hmac.compare_digest(expected, (signature or "").encode("utf-8"))

    def _local_url(self, key: str, method: str, expiration: int, **extra: str) -> str:
        expires = int(time.time()) + int(expiration)
        signature = self._sign(key, method, expires)
        query = "&".join(
            [f"method={method}", f"expires={expires}", f"signature={signature}"]
            + [f"{k}={quote(v)}" for k, v in extra.items() if v]
        )
        return f"{LOCAL_URL_PREFIX}{quote(key.lstrip('/'))}?{query}"

    def generate_presigned_upload_url(
        self,
        key: str,
        expiration: int = 900,
        content_type: str | None = None,
    ) -> str:
        return self._local_url(key, "PUT", expiration, content_type=content_type or "")

    def generate_presigned_url(
        self,
        key: str,
        expiration: int = 3600,
        content_type: str | None = None,
        filename: str | None = None,
        disposition: str | None = None,
    ) -> str:
        return self._local_url(key, "GET", expiration, filename=filename or "")

    def key_from_url(self, url: str) -> Optional[str]:
        path = unquote(urlsplit(url).path)
        if not path.startswith(LOCAL_URL_PREFIX):
            return None
        return path[len(LOCAL_URL_PREFIX):] or None
