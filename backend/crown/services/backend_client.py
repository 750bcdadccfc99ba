"""Client for the external TikTok/leaderboard backend.

Every call carries the caller's bearer token. Transport failures surface as
``BackendUnavailable`` so callers can keep their last known state; answered
errors surface as ``BackendError`` (or a more specific domain error).
"""
from __future__ import annotations
from typing import Any
import httpx
import structlog
from crown.config import settings
from crown.errors import BackendError, BackendUnavailable, TikTokPermissionDenied
from crown.schemas.leaderboard import LeaderboardEntry
from crown.schemas.tiktok import TikTokAccount, TikTokVideo

log = structlog.get_logger(__name__)

PERMISSION_DENIED = "PERMISSION_DENIED"


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            val = body.get(key)
            if isinstance(val, str) and val:
                return val
    return default


def is_permission_error(status: int | None, body: Any) -> bool:
    if status == 403:
        return True
    if isinstance(body, dict):
        if body.get("error_code") == PERMISSION_DENIED:
            return True
        if "permission not granted" in _error_message(body, "").lower():
            return True
    return False


def extract_videos(body: Any) -> list[dict] | None:
    """Read the video list from either response nesting; None when neither matches."""
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict):
        if isinstance(data.get("videos"), list):
            return data["videos"]
        inner = data.get("data")
        if isinstance(inner, dict) and isinstance(inner.get("videos"), list):
            return inner["videos"]
    return None


class BackendClient:
    def __init__(self, base_url: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=(base_url or settings.backend_url).rstrip("/"),
            timeout=settings.backend_timeout_seconds,
        )

    async def _request(self, method: str, path: str, token: str, *, timeout: float | None = None, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        extra = {"timeout": timeout} if timeout is not None else {}
        try:
            return await self._client.request(method, path, headers=headers, **extra, **kwargs)
        except httpx.TransportError as e:
            log.warning("backend.unreachable", method=method, path=path, error=str(e))
            raise BackendUnavailable("Could not reach the TikTok service. Please try again.")

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError:
            return None

    def _raise_for(self, r: httpx.Response, what: str) -> Any:
        body = self._json(r)
        if r.status_code >= 400:
            error_code = body.get("error_code") if isinstance(body, dict) else None
            log.warning("backend.error", what=what, status=r.status_code, error_code=error_code)
            raise BackendError(
                _error_message(body, f"Failed to {what}"),
                status=r.status_code,
                error_code=error_code,
                payload=body if isinstance(body, dict) else None,
            )
        return body

    # --------------------------------------------------------------- accounts

    async def initiate_auth(self, token: str, *, force_account_selection: bool = False, emphasize_video_permissions: bool = True) -> str:
        r = await self._request(
            "POST", "/api/v1/tiktok/auth/initiate", token,
            json={
                "force_account_selection": force_account_selection,
                "emphasize_video_permissions": emphasize_video_permissions,
            },
        )
        body = self._raise_for(r, "initiate TikTok authentication")
        auth_url = None
        if isinstance(body, dict):
            auth_url = body.get("auth_url") or (body.get("data") or {}).get("auth_url")
        if not auth_url:
            raise BackendError("No auth URL received from server", status=r.status_code, payload=body)
        return auth_url

    async def list_accounts(self, token: str) -> list[TikTokAccount]:
        r = await self._request("GET", "/api/v1/tiktok/accounts", token)
        body = self._raise_for(r, "load TikTok accounts")
        accounts = ((body or {}).get("data") or {}).get("accounts") or []
        return [TikTokAccount.model_validate(a) for a in accounts]

    async def set_primary(self, token: str, account_id: str) -> None:
        r = await self._request("POST", "/api/v1/tiktok/accounts/set-primary", token, json={"accountId": account_id})
        self._raise_for(r, "set primary account")

    async def delete_account(self, token: str, account_id: str) -> None:
        r = await self._request("DELETE", f"/api/v1/tiktok/accounts/{account_id}", token)
        self._raise_for(r, "delete TikTok account")

    async def disconnect(self, token: str) -> None:
        r = await self._request("POST", "/api/v1/tiktok/profile/disconnect", token)
        self._raise_for(r, "disconnect TikTok accounts")

    # ----------------------------------------------------------------- videos

    async def list_videos(self, token: str) -> list[TikTokVideo]:
        r = await self._request("POST", "/api/v1/tiktok/videos", token, json={})
        body = self._json(r)
        if is_permission_error(r.status_code, body):
            log.info("backend.videos_permission_denied", status=r.status_code)
            raise TikTokPermissionDenied()
        if r.status_code >= 400:
            self._raise_for(r, "fetch TikTok videos")
        if not isinstance(body, dict) or body.get("status") not in (None, "success"):
            raise BackendError("Unexpected response from the TikTok service", status=r.status_code, payload=body if isinstance(body, dict) else None)
        videos = extract_videos(body)
        if videos is None:
            raise BackendError("Unexpected response from the TikTok service", status=r.status_code, payload=body)
        return [TikTokVideo.model_validate(v) for v in videos]

    async def scrape_video(self, video_url: str, token: str | None = None) -> dict | None:
        """Latest public counts for a video URL, or None when the answer has no stats."""
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            r = await self._client.post("/api/v1/tiktok/scrape-video", json={"videoUrl": video_url}, headers=headers)
        except httpx.TransportError as e:
            raise BackendUnavailable(f"Could not reach the TikTok service: {e}")
        body = self._raise_for(r, "scrape TikTok video")
        stats = (((body or {}).get("data") or {}).get("video") or {}).get("stats")
        if not isinstance(stats, dict):
            log.warning("backend.scrape_unexpected", url=video_url)
            return None
        return {k: int(stats.get(k) or 0) for k in ("views", "likes", "comments", "shares")}

    # ------------------------------------------------------------ leaderboard

    async def leaderboard(self, contest_id: str, *, limit: int | None = None, token: str | None = None) -> list[LeaderboardEntry]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        r = await self._client.get(
            f"/api/v1/contests/{contest_id}/leaderboard",
            params={"limit": limit or settings.leaderboard_default_limit},
            headers=headers,
            timeout=settings.leaderboard_timeout_seconds,
        )
        r.raise_for_status()
        body = r.json()
        data = body.get("data") if isinstance(body, dict) else None
        rows = data.get("leaderboard") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            log.warning("leaderboard.unexpected_body", contest_id=contest_id, body_type=type(body).__name__)
            return []
        return [LeaderboardEntry.model_validate(row) for row in rows if isinstance(row, dict)]

    async def close(self) -> None:
        await self._client.aclose()


_backend: BackendClient | None = None

def get_backend_client() -> BackendClient:
    global _backend
    if _backend is None:
        _backend = BackendClient()
    return _backend
