from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from crown.config import settings

# Provider access tokens are HS256 JWTs signed with the project's JWT secret
JWT_ALG = "HS256"
ACCESS_TTL_MIN = 60

def decode_access_token(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=[JWT_ALG],
        audience=settings.supabase_jwt_audience,
        options={"require": ["sub", "exp"]},
    )

def make_access_token(sub: str, *, email: str | None = None, ttl_min: int = ACCESS_TTL_MIN) -> str:
    """Mint a provider-shaped access token (local development and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "aud": settings.supabase_jwt_audience,
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm=JWT_ALG)
