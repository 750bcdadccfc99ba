"""Client for the hosted auth provider's REST endpoints."""
from __future__ import annotations
from dataclasses import dataclass
from uuid import UUID
import httpx
import structlog
from crown.config import settings
from crown.errors import BackendUnavailable

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthSession:
    user_id: UUID
    access_token: str
    email: str | None = None
    # token issue time, epoch seconds; None when the provider didn't say
    issued_at: int | None = None


class SupabaseAuth:
    def __init__(self, base_url: str | None = None, anon_key: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=(base_url or settings.supabase_url).rstrip("/"),
            timeout=10.0,
            headers={"apikey": anon_key if anon_key is not None else settings.supabase_anon_key, "x-application-name": "crown"},
        )

    async def get_user(self, access_token: str) -> AuthSession | None:
        """Resolve a token to its session; None when the provider rejects it."""
        try:
            r = await self._client.get("/auth/v1/user", headers={"Authorization": f"Bearer {access_token}"})
        except httpx.TransportError as e:
            raise BackendUnavailable(f"Auth provider unreachable: {e}")
        if r.status_code in (401, 403, 404):
            return None
        r.raise_for_status()
        body = r.json()
        return AuthSession(user_id=UUID(body["id"]), access_token=access_token, email=body.get("email"))

    async def sign_out(self, access_token: str) -> None:
        try:
            r = await self._client.post("/auth/v1/logout", headers={"Authorization": f"Bearer {access_token}"})
        except httpx.TransportError as e:
            # local state is cleared regardless; the token expires on its own
            log.warning("auth.sign_out_unreachable", error=str(e))
            return
        if r.status_code >= 400 and r.status_code not in (401, 403, 404):
            log.warning("auth.sign_out_failed", status=r.status_code)

    async def close(self) -> None:
        await self._client.aclose()


_auth: SupabaseAuth | None = None

def get_auth_provider() -> SupabaseAuth:
    global _auth
    if _auth is None:
        _auth = SupabaseAuth()
    return _auth
