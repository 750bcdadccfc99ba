from __future__ import annotations
import os

# must be set before crown.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret")
os.environ.setdefault("OAUTH_POLL_SECONDS", "0.01")
os.environ.setdefault("OAUTH_LOGOUT_GRACE_SECONDS", "0.2")

import time
import uuid
from datetime import datetime, timedelta, timezone
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crown.db import Base, get_session, get_sessionmaker
from crown.events import EventBus, get_event_bus
from crown.main import app
from crown.models.contest import Contest
from crown.models.profile import Profile
from crown.models.tiktok import TikTokProfile
from crown.security import make_access_token
from crown.services.auth_provider import AuthSession, get_auth_provider
from crown.services.backend_client import BackendClient, get_backend_client
from crown.services.oauth_flow import FlowRegistry, get_flow_registry
from crown.services.state_store import get_state_store
from crown.services.tiktok_connection import ConnectionRegistry, TikTokConnectionManager, get_connection_registry
import crown.models.media  # noqa: F401
import crown.models.submission  # noqa: F401


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStateStore:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def delete(self, *keys):
        for k in keys:
            self.data.pop(k, None)

    async def keys(self):
        return list(self.data)


class FakeAuth:
    def __init__(self) -> None:
        self.signed_out: list[str] = []

    async def get_user(self, token):
        return None

    async def sign_out(self, token):
        self.signed_out.append(token)


class FakeBackend:
    """In-memory stand-in for the external TikTok/leaderboard backend."""

    def __init__(self) -> None:
        self.accounts: list[dict] = []
        self.videos: list[dict] = []
        self.videos_response: tuple[int, dict] | None = None
        self.leaderboard: list[dict] = []
        self.leaderboard_status = 200
        self.leaderboard_body: object = None  # raw JSON body overriding the rows
        self.fail_accounts: int | None = None  # status to answer with
        self.unreachable = False
        self.auth_url = "https://www.tiktok.com/v2/auth/authorize?client_key=x"
        self.calls: list[tuple[str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if self.unreachable:
            raise httpx.ConnectError("backend down", request=request)
        path = request.url.path
        if path == "/api/v1/tiktok/accounts" and request.method == "GET":
            if self.fail_accounts:
                return httpx.Response(self.fail_accounts, json={"message": "boom"})
            return httpx.Response(200, json={"status": "success", "data": {"accounts": self.accounts}})
        if path == "/api/v1/tiktok/accounts/set-primary":
            import json
            account_id = json.loads(request.content)["accountId"]
            if not any(a["id"] == account_id for a in self.accounts):
                return httpx.Response(404, json={"message": "Account not found"})
            for a in self.accounts:
                a["is_primary"] = a["id"] == account_id
            return httpx.Response(200, json={"status": "success"})
        if path.startswith("/api/v1/tiktok/accounts/") and request.method == "DELETE":
            account_id = path.rsplit("/", 1)[1]
            self.accounts = [a for a in self.accounts if a["id"] != account_id]
            return httpx.Response(200, json={"status": "success"})
        if path == "/api/v1/tiktok/profile/disconnect":
            self.accounts = []
            return httpx.Response(200, json={"status": "success"})
        if path == "/api/v1/tiktok/auth/initiate":
            return httpx.Response(200, json={"auth_url": self.auth_url})
        if path == "/api/v1/tiktok/videos":
            if self.videos_response:
                status, body = self.videos_response
                return httpx.Response(status, json=body)
            return httpx.Response(200, json={"status": "success", "data": {"videos": self.videos}})
        if path.endswith("/leaderboard"):
            if self.leaderboard_status != 200:
                return httpx.Response(self.leaderboard_status, json={"message": "nope"})
            if self.leaderboard_body is not None:
                return httpx.Response(200, json=self.leaderboard_body)
            return httpx.Response(200, json={"data": {"leaderboard": self.leaderboard}})
        if path == "/api/v1/tiktok/scrape-video":
            return httpx.Response(200, json={"data": {"video": {"stats": {"views": 1000, "likes": 100, "comments": 10, "shares": 5}}}})
        return httpx.Response(404, json={"message": "not found"})

    def client(self) -> BackendClient:
        transport = httpx.MockTransport(self.handler)
        return BackendClient(client=httpx.AsyncClient(transport=transport, base_url="http://backend"))


def make_video(video_id: str = "7300000000000000001", age_seconds: int = 3600, **kw) -> dict:
    return {
        "id": video_id,
        "title": kw.pop("title", "My cover"),
        "cover_image_url": "https://p16.tiktokcdn.com/cover.jpg",
        "create_time": int(time.time()) - age_seconds,
        "view_count": 10, "like_count": 2, "comment_count": 1, "share_count": 0,
        "duration": 30,
        **kw,
    }


def make_account(account_id: str = "acc-1", primary: bool = True, **kw) -> dict:
    return {"id": account_id, "username": kw.pop("username", "crooner"), "is_primary": primary, **kw}


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_async_engine(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def state():
    return MemoryStateStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def fake_auth():
    return FakeAuth()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def backend_client(backend):
    client = backend.client()
    yield client
    await client.close()


@pytest.fixture
def registry(backend_client):
    return ConnectionRegistry(lambda uid: TikTokConnectionManager(backend_client, user_id=uid))


@pytest.fixture
def flows():
    return FlowRegistry()


@pytest_asyncio.fixture
async def file_sessionmaker(tmp_path):
    # a connection per session so concurrent requests really race; autocommit keeps
    # a second writer from blocking on sqlite's file lock until the first commits
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crown.db'}", isolation_level="AUTOCOMMIT")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


async def _app_client(sessionmaker, state, bus, fake_auth, backend_client, registry, flows):
    async def _session():
        async with sessionmaker() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_sessionmaker] = lambda: sessionmaker
    app.dependency_overrides[get_state_store] = lambda: state
    app.dependency_overrides[get_event_bus] = lambda: bus
    app.dependency_overrides[get_auth_provider] = lambda: fake_auth
    app.dependency_overrides[get_backend_client] = lambda: backend_client
    app.dependency_overrides[get_connection_registry] = lambda: registry
    app.dependency_overrides[get_flow_registry] = lambda: flows
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await registry.close()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(sessionmaker, state, bus, fake_auth, backend_client, registry, flows):
    async for ac in _app_client(sessionmaker, state, bus, fake_auth, backend_client, registry, flows):
        yield ac


@pytest_asyncio.fixture
async def file_client(file_sessionmaker, state, bus, fake_auth, backend_client, registry, flows):
    async for ac in _app_client(file_sessionmaker, state, bus, fake_auth, backend_client, registry, flows):
        yield ac


async def create_profile(sessionmaker, role: str = "user", email: str | None = None) -> Profile:
    async with sessionmaker() as s:
        p = Profile(id=uuid.uuid4(), email=email or f"user-{uuid.uuid4().hex[:8]}@ex.com", role=role)
        s.add(p)
        await s.commit()
        return p


async def create_contest(sessionmaker, **kw) -> Contest:
    async with sessionmaker() as s:
        c = Contest(
            name=kw.pop("name", "Summer Vocals"),
            start_date=kw.pop("start_date", now_utc() - timedelta(days=1)),
            end_date=kw.pop("end_date", now_utc() + timedelta(days=7)),
            status=kw.pop("status", "active"),
            **kw,
        )
        s.add(c)
        await s.commit()
        return c


async def link_tiktok(sessionmaker, user_id, username: str = "crooner") -> None:
    async with sessionmaker() as s:
        s.add(TikTokProfile(user_id=user_id, username=username, is_primary=True))
        await s.commit()


def auth_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {make_access_token(str(profile.id), email=profile.email)}"}


def session_for(profile: Profile, token: str | None = None) -> AuthSession:
    return AuthSession(user_id=profile.id, access_token=token or make_access_token(str(profile.id)), email=profile.email)
