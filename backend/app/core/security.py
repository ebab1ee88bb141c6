"""Bearer-token authentication.

Tokens are ``<base64url(payload)>.<hex hmac-sha256>`` where the payload is
``{"sub": user_id, "exp": unix_seconds}``. Issuing tokens belongs to the
identity provider; this service only needs to verify them and resolve the
user id, which routers consume through the ``authenticate`` dependency.
"""
import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request

from app.core.config import Settings, get_settings


class InvalidTokenError(Exception):
    """Raised when a bearer token is malformed, forged or expired."""


def _sign(secret: str, b64_payload: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        b64_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def issue_token(user_id: str, secret: str, ttl_minutes: int, now: Optional[float] = None) -> str:
    """Create a signed token for user_id valid for ttl_minutes."""
    issued_at = time.time() if now is None else now
    payload = {"sub": user_id, "exp": int(issued_at + ttl_minutes * 60)}
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    b64_payload = base64.urlsafe_b64encode(payload_bytes).decode("utf-8").rstrip("=")
    return f"{b64_payload}.{_sign(secret, b64_payload)}"


def decode_token(token: str, secret: str, now: Optional[float] = None) -> str:
    """Verify token and return the user id it was issued for.

    Raises:
        InvalidTokenError: Bad format, bad signature, or expired.
    """
    try:
        b64_payload, signature = token.split(".", 1)
    except ValueError as exc:
        raise InvalidTokenError("Malformed token") from exc

    if not hmac.compare_digest(signature, _sign(secret, b64_payload)):
        raise InvalidTokenError("Bad signature")

    padded = b64_payload + "=" * (-len(b64_payload) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded))
    except ValueError as exc:
        raise InvalidTokenError("Malformed payload") from exc

    if not isinstance(data, dict) or not isinstance(data.get("sub"), str):
        raise InvalidTokenError("Malformed payload")
    current = time.time() if now is None else now
    if int(data.get("exp", 0)) < current:
        raise InvalidTokenError("Token expired")
    return data["sub"]


def authenticate(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """FastAPI dependency: resolve the calling user's id from the bearer token.

    Raises:
        HTTPException 401: Missing, invalid or expired token.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized: Please log in")
    token = auth_header.split(" ", 1)[1].strip()
    try:
        return decode_token(token, settings.auth_secret)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized: Please log in") from exc
