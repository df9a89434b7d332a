"""Principal resolution for requests coming through the session gateway.

The gateway authenticates users and hands us an HMAC-signed token, either
as the ``qd_session`` cookie or as a ``Bearer`` authorization header. The
token payload is ``{"sub": <principal id>, "admin": <bool>, "exp": <unix>}``.
Nothing here logs users in; it only verifies what the gateway issued.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Optional

from fastapi import Depends, Request

from quotedesk.app.config import Settings, get_settings
from quotedesk.app.core.errors import Unauthenticated
from quotedesk.app.core.principal import Principal

COOKIE_NAME = "qd_session"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("utf-8"))


def sign_session(payload: dict[str, Any], secret: str) -> str:
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    return f"{_b64url_encode(data)}.{_b64url_encode(sig)}"


def verify_session(token: str, secret: str) -> Optional[dict[str, Any]]:
    try:
        data_b64, sig_b64 = token.split(".", 1)
        data = _b64url_decode(data_b64)
        sig = _b64url_decode(sig_b64)
    except (ValueError, TypeError):
        return None
    expected = hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, expected):
        return None
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = int(payload.get("exp", 0) or 0)
    if exp and time.time() > exp:
        return None
    return payload


def issue_session(principal_id: str, is_admin: bool, ttl_seconds: int, secret: str) -> str:
    now = int(time.time())
    payload = {
        "sub": principal_id,
        "admin": bool(is_admin),
        "exp": now + ttl_seconds,
        "iat": now,
        "v": 1,
    }
    return sign_session(payload, secret)


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(COOKIE_NAME)


def principal_from_request(request: Request, settings: Settings) -> Optional[Principal]:
    if not settings.session_secret:
        raise RuntimeError("AUTH misconfigured: SESSION_SECRET is required")
    token = _token_from_request(request)
    if not token:
        return None
    payload = verify_session(token, settings.session_secret)
    if not payload or not payload.get("sub"):
        return None
    return Principal(principal_id=str(payload["sub"]), is_admin=bool(payload.get("admin")))


def require_principal(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Principal:
    principal = principal_from_request(request, settings)
    if principal is None:
        raise Unauthenticated("Unauthorized")
    request.state.principal = principal
    return principal
