from __future__ import annotations

import pytest

from quotedesk.app.core.principal import Principal

OWNER = Principal("u1")
STRANGER = Principal("u2")


def _upload_and_attach(api, blob_store, as_user, data=b"cad-bytes") -> str:
    from quotedesk.app.services.object_acl import ObjectPolicy, encode_policy

    resp = api.post("/api/objects/upload", headers=as_user(OWNER))
    assert resp.status_code == 200
    body = resp.json()
    key = blob_store.upload_via(body["uploadURL"], data, "model/step")
    blob_store.replace_metadata(key, encode_policy(ObjectPolicy.build("u1", "private")))
    return body["objectPath"]


def test_upload_requires_session(api) -> None:
    resp = api.post("/api/objects/upload")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


def test_upload_rejects_forged_token(api) -> None:
    from quotedesk.app.auth import issue_session

    forged = issue_session("u1", True, 3600, "not-the-secret")
    resp = api.post("/api/objects/upload", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401


def test_upload_returns_url_and_path(api, as_user) -> None:
    resp = api.post("/api/objects/upload", headers=as_user(OWNER))
    body = resp.json()
    assert body["uploadURL"].startswith("https://blobs.test/bucket/.private/uploads/")
    assert body["objectPath"].startswith("/objects/uploads/")


def test_owner_downloads_with_stream_headers(api, blob_store, as_user) -> None:
    path = _upload_and_attach(api, blob_store, as_user)

    resp = api.get(path, params={"filename": "bracket.step"}, headers=as_user(OWNER))

    assert resp.status_code == 200
    assert resp.content == b"cad-bytes"
    assert resp.headers["content-type"].startswith("model/step")
    assert resp.headers["cache-control"] == "private, max-age=600"
    assert resp.headers["content-disposition"] == 'attachment; filename="bracket.step"'
    assert blob_store.streams[-1].closed is True


def test_session_cookie_is_accepted(api, blob_store, as_user) -> None:
    from quotedesk.app.auth import COOKIE_NAME

    path = _upload_and_attach(api, blob_store, as_user)
    token = as_user(OWNER)["Authorization"].split(" ", 1)[1]
    assert api.get(path, headers={"Cookie": f"{COOKIE_NAME}={token}"}).status_code == 200


def test_stranger_gets_uniform_401(api, blob_store, as_user) -> None:
    path = _upload_and_attach(api, blob_store, as_user)

    denied = api.get(path, headers=as_user(STRANGER))
    assert denied.status_code == 401
    assert denied.json() == {"error": "Object access denied"}
    assert blob_store.streams == []


def test_missing_object_is_404(api, as_user) -> None:
    resp = api.get("/objects/uploads/nothing-here", headers=as_user(OWNER))
    assert resp.status_code == 404


def test_object_without_policy_is_denied(api, blob_store, as_user) -> None:
    resp = api.post("/api/objects/upload", headers=as_user(OWNER))
    blob_store.upload_via(resp.json()["uploadURL"], b"orphan")
    assert api.get(resp.json()["objectPath"], headers=as_user(OWNER)).status_code == 401


def test_corrupt_policy_is_a_generic_500(api, blob_store, as_user) -> None:
    path = _upload_and_attach(api, blob_store, as_user)
    key = ".private/" + path[len("/objects/"):]
    blob_store.metadata[key] = {"acl-owner-id": "u1", "acl-rules": "{not json"}

    resp = api.get(path, headers=as_user(OWNER))
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_download_url_endpoint(api, blob_store, as_user) -> None:
    path = _upload_and_attach(api, blob_store, as_user)

    resp = api.get("/api/objects/download-url", params={"path": path}, headers=as_user(OWNER))
    assert resp.status_code == 200
    assert resp.json()["expiresIn"] == 600
    assert "X-Expires=600" in resp.json()["downloadURL"]

    denied = api.get("/api/objects/download-url", params={"path": path}, headers=as_user(STRANGER))
    assert denied.status_code == 401


def test_public_objects_need_no_session(api, blob_store) -> None:
    blob_store.put_bytes("public/logo.png", b"png-bytes", "image/png")

    resp = api.get("/public-objects/logo.png")
    assert resp.status_code == 200
    assert resp.content == b"png-bytes"
    assert resp.headers["cache-control"].startswith("public")

    assert api.get("/public-objects/missing.png").status_code == 404


def test_public_route_does_not_reach_private_namespace(api, blob_store) -> None:
    blob_store.put_bytes(".private/uploads/secret", b"secret")
    assert api.get("/public-objects/..%2F.private%2Fuploads%2Fsecret").status_code == 404


def test_healthz(api) -> None:
    resp = api.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.fixture
def local_store(api, tmp_path):
    from quotedesk.app.adapters.storage_local import LocalBlobStore
    from quotedesk.app.deps import get_storage
    from quotedesk.main import app

    store = LocalBlobStore(root_dir=str(tmp_path / "objects"), signing_secret="local-signing-secret")
    app.dependency_overrides[get_storage] = lambda: store
    return store


def test_local_upload_url_round_trip(api, local_store, as_user) -> None:
    ticket = api.post("/api/objects/upload", headers=as_user(OWNER)).json()
    assert ticket["uploadURL"].startswith("/local-objects/.private/uploads/")

    put = api.put(ticket["uploadURL"], content=b"local-cad-bytes", headers={"Content-Type": "model/step"})
    assert put.status_code == 200

    quote = api.post(
        "/api/quotes",
        json={"service": "cnc_machining", "files": [{"uploadURL": ticket["uploadURL"], "name": "part.step"}]},
        headers=as_user(OWNER),
    )
    assert quote.status_code == 200, quote.text
    file_path = quote.json()["files"][0]["filePath"]

    resp = api.get(file_path, headers=as_user(OWNER))
    assert resp.status_code == 200
    assert resp.content == b"local-cad-bytes"
    assert resp.headers["content-type"] == "model/step"

    link = api.get("/api/objects/download-url", params={"path": file_path, "filename": "part.step"}, headers=as_user(OWNER))
    direct = api.get(link.json()["downloadURL"])
    assert direct.status_code == 200
    assert direct.content == b"local-cad-bytes"
    assert direct.headers["content-disposition"] == 'attachment; filename="part.step"'


def test_local_upload_rejects_tampered_or_expired_urls(api, local_store, as_user) -> None:
    url = local_store.generate_presigned_upload_url(".private/uploads/abc", expiration=60)

    tampered = url.replace("signature=", "signature=0")
    assert api.put(tampered, content=b"x").status_code == 401
    assert api.put(url.replace("uploads/abc", "uploads/other"), content=b"x").status_code == 401

    expired = local_store.generate_presigned_upload_url(".private/uploads/abc", expiration=-1)
    assert api.put(expired, content=b"x").status_code == 401

    # a download link does not authorise a write
    read_only = local_store.generate_presigned_url(".private/uploads/abc", expiration=60)
    assert api.put(read_only, content=b"x").status_code == 401

    assert api.put(url, content=b"x").status_code == 200


def test_local_object_routes_refuse_other_backends(api) -> None:
    resp = api.put("/local-objects/.private/uploads/abc", params={"expires": "9999999999", "signature": "x"}, content=b"x")
    assert resp.status_code == 401
    resp = api.get("/local-objects/.private/uploads/abc", params={"expires": "9999999999", "signature": "x"})
    assert resp.status_code == 401
