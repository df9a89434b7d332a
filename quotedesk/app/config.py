from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    database_url: str = Field("sqlite:///./quotedesk.db")

    # === Storage Configuration ===
    storage_backend: str = "local"  # "local" or "s3"

    # S3-compatible backend (AWS S3, Cloudflare R2, MinIO)
    s3_endpoint: str = ""
    s3_bucket: str = "quotedesk-objects"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_region: str = "auto"
    storage_max_attempts: int = 4

    # Local backend root (development and tests)
    local_storage_root: str = "./data_objects"

    # Object namespaces inside the bucket
    private_object_dir: str = ".private"
    public_object_search_paths: str = "public"

    # Signed URLs and streaming
    upload_url_ttl_seconds: int = 900
    download_ttl_seconds: int = 3600
    stream_chunk_size: int = 64 * 1024

    # Quote workflow
    transition_max_attempts: int = 3

    # Session tokens issued by the auth gateway
    session_secret: str = ""
    session_ttl_seconds: int = 7 * 24 * 60 * 60

    log_level: str = "INFO"

    @property
    def public_search_paths(self) -> List[str]:
        paths = [p.strip().strip("/") for p in self.public_object_search_paths.split(",")]
        return [p for p in paths if p]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def create_storage_service(settings: Settings | None = None):
    """Build the blob store adapter selected by STORAGE_BACKEND.

    Adapters are imported lazily so a local deployment never needs boto3
    credentials.
    """
    settings = settings or get_settings()
    backend = (settings.storage_backend or "local").strip().lower()

    if backend in {"s3", "r2", "minio"}:
        from quotedesk.app.adapters.s3_client import build_s3_client
        from quotedesk.app.adapters.storage_s3 import S3BlobStore

        return S3BlobStore(
            client=build_s3_client(settings),
            bucket_name=settings.s3_bucket,
        )

    from quotedesk.app.adapters.storage_local import LocalBlobStore

    return LocalBlobStore(
        root_dir=settings.local_storage_root,
        signing_secret=settings.session_secret or None,
    )
