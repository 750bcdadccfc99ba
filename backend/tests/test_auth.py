import time
import pytest
from conftest import auth_headers, create_profile

CLIENT = {"X-Client-Id": "tab-1"}


@pytest.mark.asyncio
async def test_sign_in_records_login_time(client, sessionmaker, state):
    user = await create_profile(sessionmaker)
    r = await client.post("/auth/session", headers=auth_headers(user), json={"event": "SIGNED_IN"})
    assert r.status_code == 200
    body = r.json()
    assert body["role"] == "user" and body["sliding"] is False
    assert body["expires_at"] is not None
    assert f"user:{user.id}:user_login_time" in state.data

    r = await client.get("/auth/session", headers=auth_headers(user))
    assert r.status_code == 200
    assert r.json()["user_id"] == str(user.id)


@pytest.mark.asyncio
async def test_staff_sign_in_uses_admin_key(client, sessionmaker, state):
    admin = await create_profile(sessionmaker, role="admin")
    r = await client.post("/auth/session", headers=auth_headers(admin), json={})
    assert r.status_code == 200 and r.json()["sliding"] is True
    assert f"user:{admin.id}:admin_login_time" in state.data
    assert f"user:{admin.id}:user_login_time" not in state.data


@pytest.mark.asyncio
async def test_expired_session_is_signed_out(client, sessionmaker, state, fake_auth):
    user = await create_profile(sessionmaker)
    eight_days_ago = int((time.time() - 8 * 86400) * 1000)
    state.data[f"user:{user.id}:user_login_time"] = str(eight_days_ago)
    hdrs = auth_headers(user)
    r = await client.get("/auth/session", headers=hdrs)
    assert r.status_code == 401
    assert r.json()["code"] == "session_expired"
    assert len(fake_auth.signed_out) == 1
    assert f"user:{user.id}:user_login_time" not in state.data

    # the same token replayed after the 401 stays signed out
    r = await client.get("/auth/session", headers=hdrs)
    assert r.status_code == 401
    assert r.json()["code"] == "session_expired"
    assert f"user:{user.id}:user_login_time" not in state.data

    # signing in again starts a fresh clock
    r = await client.post("/auth/session", headers=auth_headers(user), json={"event": "SIGNED_IN"})
    assert r.status_code == 200
    r = await client.get("/auth/session", headers=auth_headers(user))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_sign_out(client, sessionmaker, state, fake_auth, bus):
    user = await create_profile(sessionmaker)
    events = []
    bus.subscribe("authState", events.append)
    await client.post("/auth/session", headers=auth_headers(user), json={"event": "SIGNED_IN"})
    r = await client.delete("/auth/session", headers=auth_headers(user))
    assert r.status_code == 204
    assert fake_auth.signed_out
    assert events[-1]["detail"]["event"] == "SIGNED_OUT"
    assert not [k for k in state.data if k.startswith(f"user:{user.id}:")]


@pytest.mark.asyncio
async def test_missing_or_bad_token(client):
    r = await client.get("/auth/session")
    assert r.status_code == 401
    assert r.json()["code"] == "not_signed_in"
    r = await client.get("/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


@pytest.mark.asyncio
async def test_redirect_is_consumed_once(client, sessionmaker):
    user = await create_profile(sessionmaker)
    r = await client.put("/auth/redirect", headers=CLIENT, json={"url": "/contests/abc", "params": "?tab=rules"})
    assert r.status_code == 204
    hdrs = {**CLIENT, **auth_headers(user)}
    r = await client.post("/auth/redirect/resolve", headers=hdrs)
    assert r.json()["path"] == "/contests/abc?tab=rules"
    r = await client.post("/auth/redirect/resolve", headers=hdrs)
    assert r.json()["path"] == "/contests"


@pytest.mark.asyncio
async def test_unsafe_redirect_falls_back_by_role(client, sessionmaker):
    admin = await create_profile(sessionmaker, role="admin")
    organizer = await create_profile(sessionmaker, role="organizer")
    await client.put("/auth/redirect", headers=CLIENT, json={"url": "https://evil.example/x"})
    r = await client.post("/auth/redirect/resolve", headers={**CLIENT, **auth_headers(admin)})
    assert r.json()["path"] == "/admin/dashboard"
    await client.put("/auth/redirect", headers=CLIENT, json={"url": "//evil.example"})
    r = await client.post("/auth/redirect/resolve", headers={**CLIENT, **auth_headers(organizer)})
    assert r.json()["path"] == "/organizer/dashboard"


@pytest.mark.asyncio
async def test_redirect_needs_client_id(client):
    r = await client.put("/auth/redirect", json={"url": "/contests"})
    assert r.status_code == 400
