"""Dependency providers wiring ports to their adapters for each request."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from quotedesk.app.adapters.repo_sql import SQLAlchemyQuoteRepository
from quotedesk.app.config import Settings, get_settings
from quotedesk.app.db import get_db
from quotedesk.app.ports.repository import IQuoteRepository
from quotedesk.app.ports.storage import IBlobStore
from quotedesk.app.ports.storage_provider import get_storage_service
from quotedesk.app.services.membership import MembershipRegistry, build_membership_registry
from quotedesk.app.services.object_gateway import ObjectAccessGateway
from quotedesk.app.services.quote_lifecycle import QuoteLifecycle
from quotedesk.app.services.signed_urls import SignedUrlIssuer


def get_storage() -> IBlobStore:
    return get_storage_service()


def get_quote_repository(db: Session = Depends(get_db)) -> IQuoteRepository:
    return SQLAlchemyQuoteRepository(db)


def get_membership(db: Session = Depends(get_db)) -> MembershipRegistry:
    return build_membership_registry(db)


def get_signed_url_issuer(
    storage: IBlobStore = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> SignedUrlIssuer:
    return SignedUrlIssuer(
        storage,
        private_dir=settings.private_object_dir,
        upload_ttl_seconds=settings.upload_url_ttl_seconds,
    )


def get_object_gateway(
    storage: IBlobStore = Depends(get_storage),
    issuer: SignedUrlIssuer = Depends(get_signed_url_issuer),
    membership: MembershipRegistry = Depends(get_membership),
    settings: Settings = Depends(get_settings),
) -> ObjectAccessGateway:
    return ObjectAccessGateway(
        storage,
        issuer,
        membership,
        public_search_paths=settings.public_search_paths,
        chunk_size=settings.stream_chunk_size,
        public_ttl_seconds=settings.download_ttl_seconds,
    )


def get_quote_lifecycle(
    db: Session = Depends(get_db),
    repo: IQuoteRepository = Depends(get_quote_repository),
    settings: Settings = Depends(get_settings),
) -> QuoteLifecycle:
    return QuoteLifecycle(db, repo, max_attempts=settings.transition_max_attempts)
