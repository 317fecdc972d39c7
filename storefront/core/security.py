from __future__ import annotations

import base64
import hmac
import json
import time
from hashlib import sha256
from typing import Literal

from fastapi import Header, HTTPException
from pydantic import BaseModel

from storefront.core.config import get_settings


ActorRole = Literal["customer", "admin"]


class Actor(BaseModel):
    role: ActorRole
    id: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _auth_error(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _token_key() -> bytes:
    settings = get_settings()
    return settings.token_signing_secret.encode("utf-8")


def create_access_token(user_id: str, role: ActorRole = "customer", ttl_seconds: int | None = None) -> str:
    """Mint a signed bearer token. Login lives elsewhere; this backs the dev CLI and tests."""
    now = int(time.time())
    ttl = ttl_seconds if ttl_seconds is not None else get_settings().access_token_ttl_seconds
    payload = {"sub": user_id, "role": role, "iat": now, "exp": now + ttl}
    body = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    mac = hmac.new(_token_key(), body, sha256).digest()
    return base64.urlsafe_b64encode(body + mac).decode("ascii")


def verify_access_token(token: str) -> Actor:
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise _auth_error("invalid token encoding") from exc

    if len(raw) <= 32:
        raise _auth_error("invalid token body")

    body, mac = raw[:-32], raw[-32:]
    expected = hmac.new(_token_key(), body, sha256).digest()
    if not hmac.compare_digest(mac, expected):
        raise _auth_error("token signature mismatch")

    payload = json.loads(body.decode("utf-8"))
    if int(time.time()) > int(payload.get("exp", 0)):
        raise _auth_error("token expired")
    if payload.get("role") not in ("customer", "admin") or not payload.get("sub"):
        raise _auth_error("token claims invalid")
    return Actor(role=payload["role"], id=str(payload["sub"]))


def get_actor(authorization: str | None = Header(default=None)) -> Actor:
    settings = get_settings()
    if not settings.auth_enabled:
        return Actor(role="admin", id="dev-admin")

    if not authorization:
        raise _auth_error("missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _auth_error("invalid authorization header")
    return verify_access_token(token.strip())


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="admin role required")
