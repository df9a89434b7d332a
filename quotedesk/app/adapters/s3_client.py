"""Shared S3-compatible client helper (AWS S3, Cloudflare R2, MinIO)."""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit


def normalize_endpoint(endpoint: str, bucket: str) -> str:
    """Strip a bucket that was pasted into the endpoint URL.

    ``https://bucket.host`` and ``https://host/bucket`` both become
    ``https://host`` so the client can address the bucket path-style.
    """
    normalized = (endpoint or "").rstrip("/")
    if not normalized or not bucket:
        return normalized
    parts = urlsplit(normalized)
    host = parts.hostname or ""
    bucket_prefix = f"{bucket}."
    if host.startswith(bucket_prefix):
        host = host[len(bucket_prefix):]
        netloc = host
        if parts.port:
            netloc = f"{host}:{parts.port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    if parts.path.rstrip("/") == f"/{bucket}":
        return urlunsplit((parts.scheme, parts.netloc, "", parts.query, parts.fragment))
    return normalized


def build_s3_client(settings):
    if not settings.s3_bucket:
        raise RuntimeError("S3 bucket name is not configured")
    if not (settings.s3_access_key and settings.s3_secret_key):
        raise RuntimeError("S3 client is not configured")
    import boto3  # noqa: PLC0415
    from botocore.config import Config  # noqa: PLC0415

    config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "path"},
        retries={"max_attempts": settings.storage_max_attempts, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=normalize_endpoint(settings.s3_endpoint, settings.s3_bucket) or None,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        region_name=settings.s3_region or "auto",
        config=config,
    )
