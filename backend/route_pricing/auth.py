from __future__ import annotations

import hashlib
import hmac

from fastapi import Request

from .errors import AuthRequired, Forbidden
from .settings import settings

SESSION_TOKEN_SEPARATOR = "."


def _token_from_request(request: Request) -> str | None:
    auth = request.headers.get("authorization", "").strip()
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token
    token = request.headers.get("x-api-token", "").strip()
    return token or None


def _signing_key(secret: str | None = None) -> bytes | None:
    key = secret or settings.session_signing_secret
    if not key or not key.strip():
        return None
    return key.encode("utf-8")


def _session_signature(driver_id: str, key: bytes) -> str:
    return hmac.new(key, driver_id.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_session_token(driver_id: str, *, secret: str | None = None) -> str:
    cleaned = driver_id.strip()
    if not cleaned or SESSION_TOKEN_SEPARATOR in cleaned:
        raise ValueError("driver_id must be non-empty and must not contain '.'")
    key = _signing_key(secret)
    if key is None:
        raise ValueError("SESSION_SIGNING_SECRET is not configured")
    return f"{cleaned}{SESSION_TOKEN_SEPARATOR}{_session_signature(cleaned, key)}"


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_session_token(token: str, *, secret: str | None = None) -> str | None:
    """Driver id for a correctly signed token, otherwise None.

    Nothing verifies while no signing secret is configured.
    """
    key = _signing_key(secret)
    if key is None:
        return None
    driver_id, sep, signature = token.strip().rpartition(SESSION_TOKEN_SEPARATOR)
    if not sep or not driver_id or not signature:
        return None
    expected = _session_signature(driver_id, key)
    if not _same(expected, signature.lower()):
        return None
    return driver_id


def resolve_driver_id(token: str | None, *, supplied_driver_id: str | None = None) -> str:
    """Session first; bypass identity only when the deployment enables it."""
    if token is not None:
        driver_id = verify_session_token(token)
        if driver_id is not None:
            return driver_id
        if not settings.test_auth_bypass_enabled:
            raise AuthRequired(message="invalid session token", reason_code="invalid_session")

    if settings.test_auth_bypass_enabled:
        return supplied_driver_id or settings.test_auth_bypass_driver_id

    raise AuthRequired(message="authentication required")


def driver_id_for_request(request: Request, *, supplied_driver_id: str | None = None) -> str:
    return resolve_driver_id(_token_from_request(request), supplied_driver_id=supplied_driver_id)


def require_admin(request: Request) -> None:
    token = _token_from_request(request)
    if token is None:
        raise AuthRequired(message="missing api token")
    expected = settings.admin_api_token
    if not expected or not _same(token, expected):
        raise Forbidden(message="admin role required")


def authorized_by_cron_secret(request: Request) -> bool:
    secret = settings.cron_secret
    if not secret:
        return False
    bearer = request.headers.get("authorization", "")
    cron_header = request.headers.get("x-cron-secret", "")
    return _same(bearer, f"Bearer {secret}") or _same(cron_header, secret)
