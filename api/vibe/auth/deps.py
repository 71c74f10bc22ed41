"""
Authentication dependencies for FastAPI.

Identity is owned by an external provider; the API only verifies the session
token it issued. Two transports are accepted:
1. Cookie-based session (primary for web)
2. Bearer token (mobile and API clients)
"""

import logging
import uuid
from typing import Any

from fastapi import Cookie, Header, HTTPException

from ..config import DEV_MODE, SESSION_COOKIE_NAME
from ..http_helpers import UID_PATTERN
from .security import decode_access_token

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when authentication fails with detailed reason."""

    def __init__(self, reason: str, detail: str = "unauthorized"):
        self.reason = reason
        self.detail = detail
        self.trace_id = str(uuid.uuid4())
        super().__init__(detail)


def _unauthorized(message: str, reason: str, trace_id: str, status_code: int = 401) -> HTTPException:
    detail: dict[str, Any] = {"message": message, "trace_id": trace_id}
    if DEV_MODE:
        detail["reason"] = reason
    return HTTPException(status_code=status_code, detail=detail)


def _log_auth_failure(reason: str, trace_id: str, token_prefix: str | None = None, auth_source: str | None = None) -> None:
    logger.warning("[AUTH_FAILURE] reason=%s source=%s token=%s trace_id=%s", reason, auth_source, token_prefix, trace_id)


def _extract_bearer(authorization: str | None) -> str:
    if not authorization:
        raise AuthError(reason="missing_token", detail="Missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthError(reason="malformed_token", detail="Invalid Authorization header")
    return parts[1].strip()


def _user_from_token(token: str, trace_id: str, auth_source: str) -> dict[str, Any]:
    token_prefix = token[:8] + "..." if len(token) > 8 else token
    try:
        payload = decode_access_token(token)
    except HTTPException as exc:
        if exc.status_code != 401:
            raise
        reason = "token_expired" if "expired" in str(exc.detail).lower() else "signature_invalid"
        _log_auth_failure(reason, trace_id, token_prefix, auth_source)
        raise _unauthorized("unauthorized", reason, trace_id) from exc

    uid = str(payload.get("sub") or "")
    if not UID_PATTERN.fullmatch(uid):
        _log_auth_failure("token_bad_subject", trace_id, token_prefix, auth_source)
        raise _unauthorized("unauthorized", "token_bad_subject", trace_id)

    logger.debug("[auth] token valid, uid=%s source=%s", uid, auth_source)
    return {"uid": uid}


def get_current_user(
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """Resolve the caller from the session cookie, falling back to a bearer token."""
    trace_id = str(uuid.uuid4())

    if session_token:
        return _user_from_token(session_token, trace_id, "cookie")

    if authorization:
        try:
            token = _extract_bearer(authorization)
        except AuthError as e:
            _log_auth_failure(e.reason, e.trace_id, auth_source="bearer")
            raise _unauthorized(e.detail, e.reason, e.trace_id)
        return _user_from_token(token, trace_id, "bearer")

    _log_auth_failure("missing_token", trace_id, auth_source="none")
    raise _unauthorized("Authentication required", "missing_token", trace_id)
