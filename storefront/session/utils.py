import base64
import binascii
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from fastapi import Request
from starlette.responses import Response
from storefront.common.constants import SESSION_COOKIE_MAX_AGE, SESSION_COOKIE_NAME
from storefront.common.utils import now
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings

secure_flag = admin_config.ENV != "dev"


def get_session_secret() -> str:
    secret = config_settings.USER_SESSION_SECRET
    if not secret:
        raise RuntimeError("USER_SESSION_SECRET is not configured")
    return secret


def new_session_id() -> str:
    return secrets.token_hex(16)


def session_expiry(at: Optional[datetime] = None) -> datetime:
    return (at or now()) + timedelta(days=config_settings.SESSION_TTL_DAYS)


def _signature(payload: str) -> str:
    return hmac.new(get_session_secret().encode(), payload.encode(), hashlib.sha256).hexdigest()


def sign_session_token(session_id: str, expires_at: datetime) -> str:
    """``base64url("<sid>:<expires ms>:<hex hmac>")`` without padding so the cookie needs no quoting."""
    expires_ms = int(expires_at.timestamp() * 1000)
    payload = f"{session_id}:{expires_ms}"
    raw = f"{payload}:{_signature(payload)}"
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def verify_session_token(token: Optional[str], at: Optional[datetime] = None) -> Optional[str]:
    """Session id carried by a valid token , None for anything malformed , expired or forged."""
    if not token:
        return None
    # a missing secret must fail loudly , not read as "no session"
    get_session_secret()

    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode("utf-8")
    except (binascii.Error, ValueError):
        return None

    parts = raw.split(":")
    if len(parts) != 3:
        return None
    session_id, expires_raw, signature = parts
    if not session_id or not expires_raw.isdigit():
        return None

    current_ms = int((at or now()).timestamp() * 1000)
    if int(expires_raw) <= current_ms:
        return None

    expected = _signature(f"{session_id}:{expires_raw}")
    if len(signature) != len(expected):
        return None
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        return None
    return session_id


def hash_ip(ip: str) -> str:
    return hashlib.sha256(ip.encode()).hexdigest()


def request_metadata(request: Request) -> Dict[str, Any]:
    meta: Dict[str, Any] = {}
    ua = request.headers.get("user-agent")
    if ua:
        meta["user_agent"] = ua[:512]
    if request.client and request.client.host:
        meta["ip_hash"] = hash_ip(request.client.host)
    return meta


def session_cookie_token(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE_NAME)


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=secure_flag,
        samesite="lax",
        path="/",
        max_age=SESSION_COOKIE_MAX_AGE,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/", httponly=True, secure=secure_flag, samesite="lax")
