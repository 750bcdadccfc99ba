"""Where to send a user after sign-in.

The return target is remembered before the user leaves for the sign-in page
and consumed once afterwards. Only same-site relative paths are honoured.
"""
from __future__ import annotations
from crown.services.state_store import StateStore

RETURN_URL_KEY = "auth_return_url"
RETURN_PARAMS_KEY = "auth_return_params"

ROLE_FALLBACKS = {
    "admin": "/admin/dashboard",
    "organizer": "/organizer/dashboard",
}
DEFAULT_FALLBACK = "/contests"


def role_fallback(role: str | None) -> str:
    return ROLE_FALLBACKS.get(role or "user", DEFAULT_FALLBACK)


def is_safe_redirect(url: str) -> bool:
    return url.startswith("/") and not url.startswith("//") and "://" not in url


class AuthRedirect:
    def __init__(self, state: StateStore) -> None:
        self._state = state

    async def remember(self, url: str, params: str | None = None) -> None:
        await self._state.set(RETURN_URL_KEY, url)
        if params:
            await self._state.set(RETURN_PARAMS_KEY, params.lstrip("?"))
        else:
            await self._state.delete(RETURN_PARAMS_KEY)

    async def pending(self) -> str | None:
        url = await self._state.get(RETURN_URL_KEY)
        params = await self._state.get(RETURN_PARAMS_KEY)
        if url and params:
            sep = "&" if "?" in url else "?"
            return f"{url}{sep}{params}"
        return url

    async def clear(self) -> None:
        await self._state.delete(RETURN_URL_KEY, RETURN_PARAMS_KEY)

    async def resolve(self, role: str | None, fallback: str | None = None) -> str:
        """The path to land on now; the remembered target is cleared either way."""
        target = await self.pending()
        await self.clear()
        if target and is_safe_redirect(target):
            return target
        return fallback or role_fallback(role)
