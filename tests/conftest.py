from __future__ import annotations

from typing import Dict, Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from quotedesk.app import models
from quotedesk.app.core.errors import ObjectNotFound
from quotedesk.app.core.principal import Principal
from quotedesk.app.db import Base
from quotedesk.app.ports.storage import BlobStream, IBlobStore

TEST_SECRET = "test-session-secret"


class MemoryBlobStream(BlobStream):
    def __init__(self, data: bytes, content_type: str):
        self._data = data
        self.content_type = content_type
        self.content_length = len(data)
        self.closed = False
        self.chunks_served = 0

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        for start in range(0, len(self._data), chunk_size):
            if self.closed:
                raise ValueError("read from closed stream")
            self.chunks_served += 1
            yield self._data[start:start + chunk_size]

    def close(self) -> None:
        self.closed = True


class MemoryBlobStore(IBlobStore):
    """In-memory stand-in for the blob backend."""

    URL_BASE = "https://blobs.test/bucket/"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.metadata: Dict[str, Dict[str, str]] = {}
        self.streams: list[MemoryBlobStream] = []

    def put_bytes(self, key, data, content_type="application/octet-stream"):
        self.objects[key] = data
        self.content_types[key] = content_type
        self.metadata[key] = {}
        return key

    def get_metadata(self, key):
        if key not in self.objects:
            raise ObjectNotFound(f"Object not found: {key}")
        return dict(self.metadata.get(key, {}))

    def replace_metadata(self, key, metadata):
        if key not in self.objects:
            raise ObjectNotFound(f"Object not found: {key}")
        self.metadata[key] = {k.lower(): v for k, v in metadata.items()}

    def open_stream(self, key):
        if key not in self.objects:
            raise ObjectNotFound(f"Object not found: {key}")
        stream = MemoryBlobStream(self.objects[key], self.content_types[key])
        self.streams.append(stream)
        return stream

    def generate_presigned_upload_url(self, key, expiration=900, content_type=None):
        return f"{self.URL_BASE}{key}?X-Method=PUT&X-Expires={expiration}"

    def generate_presigned_url(self, key, expiration=3600, content_type=None, filename=None, disposition=None):
        url = f"{self.URL_BASE}{key}?X-Method=GET&X-Expires={expiration}"
        if filename:
            url += f"&filename={filename}"
        return url

    def key_from_url(self, url: str) -> Optional[str]:
        if not url.startswith(self.URL_BASE):
            return None
        return url[len(self.URL_BASE):].split("?", 1)[0] or None

    def upload_via(self, upload_url: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Simulate the client PUT against a presigned upload URL."""
        key = self.key_from_url(upload_url)
        assert key is not None
        return self.put_bytes(key, data, content_type)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'quotedesk-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def customer() -> Principal:
    return Principal(principal_id="u1", is_admin=False)


@pytest.fixture
def admin() -> Principal:
    return Principal(principal_id="admin-1", is_admin=True)


def _make_quote(session, owner_id: str = "u1", status: models.QuoteStatus = models.QuoteStatus.REQUESTED) -> models.Quote:
    """Insert a quote whose history walks every stage up to ``status``."""
    quote = models.Quote(user_id=owner_id, service="cnc_machining", quantity=1, status=status.value)
    for stage in models.QuoteStatus:
        quote.status_history.append(
            models.QuoteStatusHistory(status=stage.value, notes=None, actor_id=owner_id)
        )
        if stage is status:
            break
    session.add(quote)
    session.commit()
    return quote


@pytest.fixture
def quote_factory():
    return _make_quote


@pytest.fixture
def api(session_factory, blob_store):
    """TestClient wired to the in-memory blob store and the test database."""
    from fastapi.testclient import TestClient

    from quotedesk.app.config import Settings, get_settings
    from quotedesk.app.db import get_db
    from quotedesk.app.deps import get_storage
    from quotedesk.main import app

    settings = Settings(session_secret=TEST_SECRET, stream_chunk_size=4, download_ttl_seconds=600)

    def _db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_storage] = lambda: blob_store
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(principal: Principal) -> dict:
    from quotedesk.app.auth import issue_session

    token = issue_session(principal.principal_id, principal.is_admin, 3600, TEST_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def as_user():
    return auth_headers
