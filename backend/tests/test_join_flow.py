import asyncio
import time
import pytest
from sqlalchemy import select, func
from crown.models.contest import ContestParticipant
from crown.models.submission import ContestLink
from crown.schemas.tiktok import TikTokVideo
from crown.services import join_flow
from crown.services.join_flow import is_video_eligible
from crown.errors import TIKTOK_UPLOAD_URL
from conftest import auth_headers, create_contest, create_profile, link_tiktok, make_account, make_video


async def _setup(sessionmaker, backend, *, tiktok_username="crooner"):
    user = await create_profile(sessionmaker)
    contest = await create_contest(sessionmaker)
    if tiktok_username:
        await link_tiktok(sessionmaker, user.id, tiktok_username)
    backend.accounts = [make_account()]
    backend.videos = [make_video("v-fresh", 3600), make_video("v-old", 90000)]
    return user, contest, auth_headers(user)


async def _count(sessionmaker, model, contest_id):
    async with sessionmaker() as s:
        return await s.scalar(select(func.count()).select_from(model).where(model.contest_id == contest_id))


def test_eligibility_boundary():
    now = 2_000_000_000
    assert is_video_eligible(TikTokVideo(id="a", create_time=now - 86399), now)
    assert not is_video_eligible(TikTokVideo(id="b", create_time=now - 86400), now)
    assert not is_video_eligible(TikTokVideo(id="c", create_time=now - 90000), now)


@pytest.mark.asyncio
async def test_join_select_submit(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)

    r = await client.post(f"/contests/{contest.id}/join", headers=hdrs)
    assert r.status_code == 200, r.text
    options = {o["video"]["id"]: o["eligible"] for o in r.json()["videos"]}
    assert options == {"v-fresh": True, "v-old": False}
    assert r.json()["resuming"] is False

    r = await client.post(f"/contests/{contest.id}/join/videos/v-fresh/select", headers=hdrs)
    assert r.status_code == 200

    r = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    assert r.status_code == 201, r.text
    sub = r.json()["submission"]
    assert sub["url"] == "https://www.tiktok.com/@crooner/video/v-fresh"
    assert 'data-video-id="v-fresh"' in sub["embed_code"]
    assert sub["username"] == "crooner"
    assert sub["tiktok_video_id"] == "v-fresh"

    r = await client.get(f"/contests/{contest.id}/submissions")
    assert [s["id"] for s in r.json()] == [sub["id"]]


@pytest.mark.asyncio
async def test_stale_video_is_rejected_with_upload_link(client, sessionmaker, backend, bus):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    notices = []
    bus.subscribe("notice", notices.append)

    r = await client.post(f"/contests/{contest.id}/join/videos/v-old/select", headers=hdrs)
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "video_too_old"
    assert body["action"] == "upload_new_video"
    assert body["link"] == TIKTOK_UPLOAD_URL
    assert notices[-1]["detail"]["link"] == TIKTOK_UPLOAD_URL

    r = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-old"})
    assert r.status_code == 422
    assert await _count(sessionmaker, ContestLink, contest.id) == 0
    assert await _count(sessionmaker, ContestParticipant, contest.id) == 0


@pytest.mark.asyncio
async def test_video_that_aged_since_selection_is_rejected_at_submit(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    r = await client.post(f"/contests/{contest.id}/join/videos/v-fresh/select", headers=hdrs)
    assert r.status_code == 200
    # the platform's create_time didn't move, the clock did
    backend.videos = [make_video("v-fresh", 86401)]
    r = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    assert r.status_code == 422
    assert await _count(sessionmaker, ContestLink, contest.id) == 0


@pytest.mark.asyncio
async def test_double_submit_is_already_joined(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    r1 = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    r2 = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    assert r1.status_code == 201
    assert r2.status_code == 409
    assert r2.json()["code"] == "already_joined"
    assert await _count(sessionmaker, ContestLink, contest.id) == 1
    assert await _count(sessionmaker, ContestParticipant, contest.id) == 1

    r = await client.post(f"/contests/{contest.id}/join", headers=hdrs)
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_concurrent_submits_write_one_entry(file_client, file_sessionmaker, backend, monkeypatch):
    user, contest, hdrs = await _setup(file_sessionmaker, backend)
    # both clicks get past the "already joined" checks before either one writes
    both_checked = asyncio.Barrier(2)
    fetch_fresh = join_flow.select_video

    async def _select_together(*args, **kw):
        await asyncio.wait_for(both_checked.wait(), timeout=5)
        return await fetch_fresh(*args, **kw)

    monkeypatch.setattr(join_flow, "select_video", _select_together)
    url = f"/contests/{contest.id}/submissions"
    responses = await asyncio.gather(
        file_client.post(url, headers=hdrs, json={"video_id": "v-fresh"}),
        file_client.post(url, headers=hdrs, json={"video_id": "v-fresh"}),
    )
    assert sorted(r.status_code for r in responses) == [201, 409]
    conflict = next(r for r in responses if r.status_code == 409)
    assert conflict.json()["code"] == "already_joined"
    assert await _count(file_sessionmaker, ContestLink, contest.id) == 1
    assert await _count(file_sessionmaker, ContestParticipant, contest.id) == 1


@pytest.mark.asyncio
async def test_orphaned_participant_is_reused(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    async with sessionmaker() as s:
        orphan = ContestParticipant(contest_id=contest.id, user_id=user.id)
        s.add(orphan)
        await s.commit()

    r = await client.post(f"/contests/{contest.id}/join", headers=hdrs)
    assert r.status_code == 200
    assert r.json()["resuming"] is True

    r = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    assert r.status_code == 201, r.text
    assert r.json()["participant_id"] == str(orphan.id)
    assert await _count(sessionmaker, ContestParticipant, contest.id) == 1


@pytest.mark.asyncio
async def test_permission_denied_maps_to_reconnect(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    backend.videos_response = (200, {"status": "error", "error_code": "PERMISSION_DENIED", "message": "scope missing"})
    r = await client.post(f"/contests/{contest.id}/join", headers=hdrs)
    assert r.status_code == 403
    assert r.json()["action"] == "reconnect_with_video_permissions"

    backend.videos_response = (400, {"status": "error", "message": "Video permission not granted"})
    r = await client.get("/tiktok/videos", headers=hdrs)
    assert r.status_code == 403
    assert r.json()["code"] == "tiktok_permission_denied"


@pytest.mark.asyncio
async def test_nested_video_response_shape(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    backend.videos_response = (200, {"status": "success", "data": {"data": {"videos": [make_video("nested", 60)]}}})
    r = await client.get(f"/contests/{contest.id}/join/videos", headers=hdrs)
    assert r.status_code == 200
    assert [o["video"]["id"] for o in r.json()] == ["nested"]

    backend.videos_response = (200, {"status": "success", "data": {"items": []}})
    r = await client.get(f"/contests/{contest.id}/join/videos", headers=hdrs)
    assert r.status_code == 502


@pytest.mark.asyncio
async def test_requires_tiktok_connection(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend)
    backend.accounts = []
    r = await client.post(f"/contests/{contest.id}/join", headers=hdrs)
    assert r.status_code == 400
    assert r.json()["action"] == "connect_tiktok"


@pytest.mark.asyncio
async def test_username_fallback_and_share_url(client, sessionmaker, backend):
    user, contest, hdrs = await _setup(sessionmaker, backend, tiktok_username=None)
    r = await client.post(f"/contests/{contest.id}/submissions", headers=hdrs, json={"video_id": "v-fresh"})
    assert r.json()["submission"]["url"] == "https://www.tiktok.com/@username/video/v-fresh"

    other = await create_profile(sessionmaker)
    backend.videos = [make_video("shared", 60, share_url="https://www.tiktok.com/@someone/video/shared?lang=en")]
    r = await client.post(f"/contests/{contest.id}/submissions", headers=auth_headers(other), json={"video_id": "shared"})
    assert r.json()["submission"]["url"] == "https://www.tiktok.com/@someone/video/shared?lang=en"


@pytest.mark.asyncio
async def test_closed_contest_cannot_be_joined(client, sessionmaker, backend):
    from datetime import datetime, timedelta, timezone
    user, _, hdrs = await _setup(sessionmaker, backend)
    past = datetime.now(timezone.utc) - timedelta(days=10)
    ended = await create_contest(sessionmaker, start_date=past, end_date=past + timedelta(days=2))
    r = await client.post(f"/contests/{ended.id}/join", headers=hdrs)
    assert r.status_code == 400
    assert r.json()["code"] == "contest_closed"


@pytest.mark.asyncio
async def test_must_be_signed_in(client, sessionmaker, backend):
    contest = await create_contest(sessionmaker)
    r = await client.post(f"/contests/{contest.id}/join")
    assert r.status_code == 401
    assert r.json()["code"] == "not_signed_in"
