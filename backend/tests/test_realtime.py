import asyncio
import uuid
import pytest
from fastapi import WebSocketDisconnect
from crown.config import settings
from crown.routes.realtime import CLOSE_UNAUTHORIZED, leaderboard_event, updates
from crown.schemas.leaderboard import LeaderboardEntry
from crown.security import make_access_token
from conftest import create_profile


class FakeSocket:
    def __init__(self) -> None:
        self.accepted = False
        self.closed_with: int | None = None
        self.sent: list[dict] = []
        self.gone = asyncio.Event()

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000):
        self.closed_with = code

    async def receive_text(self):
        await self.gone.wait()
        raise WebSocketDisconnect(1000)

    async def send_json(self, data):
        self.sent.append(data)

    def topics(self) -> list[str]:
        return [e["topic"] for e in self.sent]


async def _until(cond, timeout: float = 2.0):
    async def _wait():
        while not cond():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_wait(), timeout)


def test_leaderboard_event_shape():
    event = leaderboard_event("c1", [LeaderboardEntry(rank=1, username="first", views=9)])
    assert event["topic"] == "leaderboard"
    assert event["detail"]["contest_id"] == "c1"
    assert event["detail"]["entries"][0]["username"] == "first"
    assert event["detail"]["entries"][0]["views"] == 9


@pytest.mark.asyncio
async def test_bad_token_is_refused(file_sessionmaker, state, bus, fake_auth, backend_client):
    ws = FakeSocket()
    await updates(ws, token="garbage", contest_id=None, sessions=file_sessionmaker, state=state, bus=bus, auth=fake_auth, backend=backend_client)
    assert ws.closed_with == CLOSE_UNAUTHORIZED
    assert not ws.accepted


@pytest.mark.asyncio
async def test_open_socket_pushes_leaderboard_without_holding_a_connection(
    file_sessionmaker, state, bus, fake_auth, backend, backend_client, monkeypatch
):
    monkeypatch.setattr(settings, "leaderboard_poll_seconds", 0.02)
    profile = await create_profile(file_sessionmaker)
    backend.leaderboard = [{"rank": 1, "username": "first", "views": 900}]
    contest_id = uuid.uuid4()
    ws = FakeSocket()
    token = make_access_token(str(profile.id), email=profile.email)
    task = asyncio.create_task(updates(
        ws, token=token, contest_id=contest_id, sessions=file_sessionmaker,
        state=state, bus=bus, auth=fake_auth, backend=backend_client,
    ))
    await _until(lambda: ws.topics().count("leaderboard") >= 2)
    await asyncio.sleep(0.05)

    pool = file_sessionmaker.kw["bind"].pool
    assert pool.checkedout() == 0
    pushed = next(e for e in ws.sent if e["topic"] == "leaderboard")
    assert pushed["detail"]["contest_id"] == str(contest_id)
    assert pushed["detail"]["entries"][0]["username"] == "first"

    await bus.publish("contestUpdate", {"table": "contests", "op": "UPDATE", "id": str(contest_id)})
    await _until(lambda: "contestUpdate" in ws.topics())

    ws.gone.set()
    await asyncio.wait_for(task, 2)
    count = len(ws.sent)
    await asyncio.sleep(0.08)
    assert len(ws.sent) == count
    assert pool.checkedout() == 0
