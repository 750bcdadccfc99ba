import pytest
from crown.models.media import VideoLink
from conftest import auth_headers, create_profile


async def _videos(sessionmaker, active: int, inactive: int = 0) -> list[VideoLink]:
    out = []
    async with sessionmaker() as s:
        for i in range(active + inactive):
            v = VideoLink(title=f"clip {i}", url=f"https://cdn/clip{i}.mp4", active=i < active)
            s.add(v)
            out.append(v)
        await s.commit()
    return out


@pytest.mark.asyncio
async def test_delete_refused_at_minimum(client, sessionmaker, bus):
    admin = await create_profile(sessionmaker, role="admin")
    vids = await _videos(sessionmaker, active=3)
    r = await client.delete(f"/media/{vids[0].id}", headers=auth_headers(admin))
    assert r.status_code == 409
    assert r.json()["code"] == "minimum_media"
    r = await client.get("/media")
    assert len(r.json()) == 3


@pytest.mark.asyncio
async def test_delete_allowed_above_minimum(client, sessionmaker, bus):
    admin = await create_profile(sessionmaker, role="admin")
    updates = []
    bus.subscribe("videoUpdate", updates.append)
    vids = await _videos(sessionmaker, active=4)
    r = await client.delete(f"/media/{vids[0].id}", headers=auth_headers(admin))
    assert r.status_code == 204
    assert updates[-1]["detail"] == {"table": "video_links", "op": "DELETE", "id": str(vids[0].id)}
    r = await client.delete(f"/media/{vids[1].id}", headers=auth_headers(admin))
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_inactive_item_can_always_be_deleted(client, sessionmaker):
    admin = await create_profile(sessionmaker, role="admin")
    vids = await _videos(sessionmaker, active=3, inactive=1)
    r = await client.delete(f"/media/{vids[3].id}", headers=auth_headers(admin))
    assert r.status_code == 204


@pytest.mark.asyncio
async def test_toggle_respects_minimum(client, sessionmaker):
    admin = await create_profile(sessionmaker, role="organizer")
    vids = await _videos(sessionmaker, active=3, inactive=1)
    hdrs = auth_headers(admin)
    r = await client.patch(f"/media/{vids[0].id}", headers=hdrs, json={"active": False})
    assert r.status_code == 409
    r = await client.patch(f"/media/{vids[3].id}", headers=hdrs, json={"active": True})
    assert r.status_code == 200 and r.json()["active"] is True
    r = await client.patch(f"/media/{vids[0].id}", headers=hdrs, json={"active": False})
    assert r.status_code == 200
    r = await client.get("/media", params={"active_only": False})
    assert len(r.json()) == 4


@pytest.mark.asyncio
async def test_plain_users_cannot_manage_media(client, sessionmaker):
    user = await create_profile(sessionmaker)
    vids = await _videos(sessionmaker, active=5)
    r = await client.delete(f"/media/{vids[0].id}", headers=auth_headers(user))
    assert r.status_code == 403
