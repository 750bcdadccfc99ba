"""Persisted key/value state (login timestamps, redirect targets, one-shot flags).

Writes are user-triggered and rare; last writer wins and no locking is done.
"""
from __future__ import annotations
from typing import Protocol
from redis.asyncio import Redis
from crown.config import settings


class StateStore(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, *keys: str) -> None: ...
    async def keys(self) -> list[str]: ...


class RedisStateStore:
    def __init__(self, client: Redis, namespace: str = "crown") -> None:
        self._r = client
        self._ns = namespace

    @classmethod
    def from_url(cls, url: str | None = None) -> "RedisStateStore":
        return cls(Redis.from_url(url or settings.redis_url, decode_responses=True))

    def _k(self, key: str) -> str:
        return f"{self._ns}:{key}"

    async def get(self, key: str) -> str | None:
        return await self._r.get(self._k(key))

    async def set(self, key: str, value: str) -> None:
        await self._r.set(self._k(key), value)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self._r.delete(*(self._k(k) for k in keys))

    async def keys(self) -> list[str]:
        prefix = self._k("")
        return [k[len(prefix):] async for k in self._r.scan_iter(match=f"{prefix}*")]

    async def close(self) -> None:
        await self._r.aclose()


class ScopedState:
    """One slice of a shared store (a user or an anonymous client); keys keep their plain names."""

    def __init__(self, store: StateStore, scope: str) -> None:
        self._store = store
        self._prefix = f"{scope}:"

    async def get(self, key: str) -> str | None:
        return await self._store.get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._store.set(self._prefix + key, value)

    async def delete(self, *keys: str) -> None:
        await self._store.delete(*(self._prefix + k for k in keys))

    async def keys(self) -> list[str]:
        return [k[len(self._prefix):] for k in await self._store.keys() if k.startswith(self._prefix)]


_store: StateStore | None = None

def get_state_store() -> StateStore:
    global _store
    if _store is None:
        _store = RedisStateStore.from_url()
    return _store
