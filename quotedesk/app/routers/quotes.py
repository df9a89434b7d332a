"""Customer quote routes and the admin quote workflow routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from quotedesk.app.auth import require_principal
from quotedesk.app.core.principal import Principal
from quotedesk.app.deps import get_object_gateway, get_quote_lifecycle
from quotedesk.app.schemas import (
    QuoteCreate,
    QuoteDetail,
    QuoteOut,
    QuotePriceUpdate,
    QuoteStatusUpdate,
)
from quotedesk.app.services.object_gateway import ObjectAccessGateway
from quotedesk.app.services.quote_lifecycle import QuoteLifecycle, UploadedFile

api_router = APIRouter(prefix="/api/quotes", tags=["quotes"])
admin_router = APIRouter(prefix="/api/admin/quotes", tags=["admin"])


@api_router.post("", response_model=QuoteDetail)
def create_quote(
    body: QuoteCreate,
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
    gateway: ObjectAccessGateway = Depends(get_object_gateway),
):
    files = [UploadedFile(upload_url=f.upload_url, name=f.name, size=f.size or 0) for f in body.files]
    data = body.model_dump(exclude={"files"})
    return lifecycle.create_quote(principal, data, files, gateway)


@api_router.get("", response_model=List[QuoteOut])
def list_my_quotes(
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
):
    return lifecycle.list_for_user(principal)


@api_router.get("/{quote_id}", response_model=QuoteDetail)
def get_quote(
    quote_id: str,
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
):
    return lifecycle.get_visible(quote_id, principal)


@admin_router.get("", response_model=List[QuoteOut])
def list_all_quotes(
    status: Optional[str] = Query(None),
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
):
    return lifecycle.list_all(principal, status=status)


@admin_router.put("/{quote_id}/status", response_model=QuoteDetail)
def update_quote_status(
    quote_id: str,
    body: QuoteStatusUpdate,
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
):
    return lifecycle.transition_to(quote_id, body.status, principal, body.notes)


@admin_router.put("/{quote_id}/price", response_model=QuoteDetail)
def update_quote_price(
    quote_id: str,
    body: QuotePriceUpdate,
    principal: Principal = Depends(require_principal),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
):
    return lifecycle.set_final_price(quote_id, body.final_price, principal)
