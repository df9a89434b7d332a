"""Object upload/download routes.

Private objects are only ever served after their ACL policy allows the
caller; public objects come from the configured public search paths.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from quotedesk.app.auth import require_principal
from quotedesk.app.config import Settings, get_settings
from quotedesk.app.core.errors import ObjectAccessDenied
from quotedesk.app.core.principal import Principal
from quotedesk.app.deps import get_object_gateway, get_storage
from quotedesk.app.ports.storage import IBlobStore
from quotedesk.app.schemas import DownloadURLResponse, UploadURLResponse
from quotedesk.app.services.object_acl import Permission
from quotedesk.app.services.object_gateway import ObjectAccessGateway, ObjectStream
from quotedesk.app.services.signed_urls import OBJECT_PATH_PREFIX

logger = logging.getLogger(__name__)

router = APIRouter()


def _stream_response(stream: ObjectStream) -> StreamingResponse:
    return StreamingResponse(
        stream.iter_chunks(),
        media_type=stream.content_type,
        headers=stream.headers(),
        background=BackgroundTask(stream.close),
    )


@router.post("/api/objects/upload", response_model=UploadURLResponse)
def request_upload_url(
    principal: Principal = Depends(require_principal),
    gateway: ObjectAccessGateway = Depends(get_object_gateway),
):
    ticket = gateway.request_upload(principal.principal_id)
    return UploadURLResponse(upload_url=ticket.upload_url, object_path=ticket.object_path)


@router.get("/api/objects/download-url", response_model=DownloadURLResponse)
def object_download_url(
    path: str = Query(..., min_length=1),
    filename: Optional[str] = Query(None),
    principal: Principal = Depends(require_principal),
    gateway: ObjectAccessGateway = Depends(get_object_gateway),
    settings: Settings = Depends(get_settings),
):
    ttl = settings.download_ttl_seconds
    url = gateway.issue_download_url_for(path, principal.principal_id, ttl, filename)
    return DownloadURLResponse(download_url=url, expires_in=ttl)


@router.get("/objects/{object_path:path}")
def download_object(
    object_path: str,
    filename: Optional[str] = Query(None),
    principal: Principal = Depends(require_principal),
    gateway: ObjectAccessGateway = Depends(get_object_gateway),
    settings: Settings = Depends(get_settings),
):
    stream = gateway.resolve_and_stream(
        OBJECT_PATH_PREFIX + object_path.lstrip("/"),
        principal.principal_id,
        Permission.READ,
        settings.download_ttl_seconds,
        filename,
    )
    return _stream_response(stream)


@router.get("/public-objects/{file_path:path}")
def download_public_object(
    file_path: str,
    gateway: ObjectAccessGateway = Depends(get_object_gateway),
):
    return _stream_response(gateway.resolve_public(file_path))


# Targets of the local backend's presigned URLs; the signature is the only credential.
@router.put("/local-objects/{key:path}")
async def upload_local_object(
    key: str,
    request: Request,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: IBlobStore = Depends(get_storage),
):
    if not storage.verify_presigned(key, "PUT", expires, signature):
        raise ObjectAccessDenied("Upload URL is invalid or expired", {"key": key})
    data = await request.body()
    content_type = request.headers.get("content-type") or "application/octet-stream"
    storage.put_bytes(key, data, content_type)
    logger.info("Stored local upload bytes=%d", len(data), extra={"object_path": key})
    return Response(status_code=200)


@router.get("/local-objects/{key:path}")
def download_local_object(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    filename: Optional[str] = Query(None),
    storage: IBlobStore = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    if not storage.verify_presigned(key, "GET", expires, signature):
        raise ObjectAccessDenied("Download URL is invalid or expired", {"key": key})
    stream = ObjectStream(
        storage.open_stream(key),
        chunk_size=settings.stream_chunk_size,
        cache_control=f"private, max-age={settings.download_ttl_seconds}",
        filename=filename,
    )
    return _stream_response(stream)
