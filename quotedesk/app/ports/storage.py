from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional


class BlobStream(ABC):
    """An open read stream on one stored object.

    Callers must call :meth:`close` once they are done, including when they
    stop iterating early.
    """

    content_type: str = "application/octet-stream"
    content_length: Optional[int] = None

    @abstractmethod
    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class IBlobStore(ABC):
    @abstractmethod
    def put_bytes(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        pass

    @abstractmethod
    def get_metadata(self, key: str) -> Dict[str, str]:
        """Return the user metadata stored with ``key`` (raises ObjectNotFound)."""

    @abstractmethod
    def replace_metadata(self, key: str, metadata: Dict[str, str]) -> None:
        """Replace, never merge, the user metadata stored with ``key``."""

    @abstractmethod
    def open_stream(self, key: str) -> BlobStream:
        pass

    @abstractmethod
    def generate_presigned_upload_url(
        self,
        key: str,
        expiration: int = 900,
        content_type: str | None = None,
    ) -> str:
        pass

    @abstractmethod
    def generate_presigned_url(
        self,
        key: str,
        expiration: int = 3600,
        content_type: str | None = None,
        filename: str | None = None,
        disposition: str | None = None,
    ) -> str:
        pass

    @abstractmethod
    def key_from_url(self, url: str) -> Optional[str]:
        """Recover the storage key from a URL this backend issued, else None."""

    def verify_presigned(self, key: str, method: str, expires: int, signature: str) -> bool:
        """Check a presigned URL this app serves itself.

        Backends whose URLs point at the storage service never route back
        here, so the default refuses everything.
        """
        return False
