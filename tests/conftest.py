"""Shared fixtures: an in-process fake counter store and fake playback collaborators."""

from __future__ import annotations

import asyncio
import re
import socket
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from crowdplay.api.client import CounterStoreClient
from crowdplay.core.playback_session import PlaybackSession
from crowdplay.core.ports import QueuedTrack
from crowdplay.models.playback import RepeatMode
from crowdplay.storage.local_storage import LocalStorage

_QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')


class FakeCounterStore:
    """Just enough of PostgREST to serve the ``song_upvotes`` collection."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.headers: list[dict[str, str]] = []
        self.fail_status: int | None = None
        self.url = ""
        self._next_id = 1

    def seed(self, track_id: str, count: int) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self.rows[track_id] = {
            "id": self._next_id,
            "track_id": track_id,
            "upvote_count": count,
            "created_at": now,
            "updated_at": now,
        }
        self._next_id += 1

    def count(self, track_id: str) -> int | None:
        row = self.rows.get(track_id)
        return None if row is None else row["upvote_count"]

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/rest/v1/song_upvotes", self.handle)
        return app

    def _matching(self, query: dict[str, str]) -> list[dict[str, Any]]:
        flt = query.get("track_id")
        if flt is None:
            return list(self.rows.values())
        if flt.startswith("eq."):
            row = self.rows.get(flt[3:])
            return [row] if row else []
        if flt.startswith("in.(") and flt.endswith(")"):
            wanted = [
                m.group(1).replace('\\"', '"').replace("\\\\", "\\")
                for m in _QUOTED.finditer(flt[4:-1])
            ]
            return [self.rows[tid] for tid in wanted if tid in self.rows]
        raise web.HTTPBadRequest(text="unsupported filter")

    @staticmethod
    def _select(rows: list[dict[str, Any]], select: str | None) -> list[dict[str, Any]]:
        if not select or select == "*":
            return rows
        fields = select.split(",")
        return [{k: row[k] for k in fields} for row in rows]

    async def handle(self, request: web.Request) -> web.Response:
        query = dict(request.query)
        self.requests.append((request.method, query))
        self.headers.append(dict(request.headers))

        if self.fail_status is not None:
            return web.json_response({"message": "boom"}, status=self.fail_status)

        if request.method == "GET":
            rows = self._matching(query)
            return web.json_response(self._select(rows, query.get("select")))

        if request.method == "POST":
            body = await request.json()
            track_id = body["track_id"]
            if track_id in self.rows:
                return web.json_response(
                    {"code": "23505", "message": "duplicate key"}, status=409
                )
            self.seed(track_id, body.get("upvote_count", 0))
            return web.json_response([self.rows[track_id]], status=201)

        if request.method == "PATCH":
            body = await request.json()
            rows = self._matching(query)
            for row in rows:
                row["upvote_count"] = body["upvote_count"]
                row["updated_at"] = datetime.now(timezone.utc).isoformat()
            return web.json_response(rows)

        return web.json_response({"message": "method not allowed"}, status=405)


@pytest.fixture
async def store() -> AsyncIterator[FakeCounterStore]:
    fake = FakeCounterStore()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest.fixture
async def client(store: FakeCounterStore) -> AsyncIterator[CounterStoreClient]:
    async with CounterStoreClient(store.url, "test-key") as c:
        yield c


@pytest.fixture
def unreachable_url() -> str:
    """A local URL nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}"


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path)


class FakeAudioOutput:
    """Audio output whose loads stay pending until the test resolves them."""

    def __init__(self) -> None:
        self.calls: list[Any] = []
        self.volume: float | None = None
        self.closed = False
        self.auto_duration: float | None = None
        self.play_error: Exception | None = None
        self.on_time_update: Callable[[float], None] | None = None
        self.on_ended: Callable[[], None] | None = None
        self.on_error: Callable[[BaseException], None] | None = None
        self._pending: dict[str, list[asyncio.Future]] = {}

    def bind(self, on_time_update, on_ended, on_error) -> None:
        self.on_time_update = on_time_update
        self.on_ended = on_ended
        self.on_error = on_error

    async def load(self, url: str) -> float:
        self.calls.append(("load", url))
        if self.auto_duration is not None:
            return self.auto_duration
        future = asyncio.get_running_loop().create_future()
        self._pending.setdefault(url, []).append(future)
        return await future

    def resolve(self, url: str, duration: float) -> None:
        self._pending[url].pop(0).set_result(duration)

    def fail(self, url: str, error: Exception) -> None:
        self._pending[url].pop(0).set_exception(error)

    def play(self) -> None:
        if self.play_error is not None:
            raise self.play_error
        self.calls.append("play")

    def pause(self) -> None:
        self.calls.append("pause")

    def seek(self, seconds: float) -> None:
        self.calls.append(("seek", seconds))

    def set_volume(self, level: float) -> None:
        self.volume = level

    def stop(self) -> None:
        self.calls.append("stop")

    async def close(self) -> None:
        self.closed = True


class FakeQueue:
    """Plays a fixed list in order; repeat-all wraps around."""

    def __init__(self, track_ids: list[str]) -> None:
        self.tracks = [QueuedTrack(tid, f"https://cdn.test/{tid}.mp3") for tid in track_ids]

    def _index(self, current: str | None) -> int | None:
        for i, track in enumerate(self.tracks):
            if track.track_id == current:
                return i
        return None

    def next_track(self, current, *, shuffle, repeat):
        if not self.tracks:
            return None
        i = self._index(current)
        if i is None:
            return self.tracks[0]
        if i + 1 < len(self.tracks):
            return self.tracks[i + 1]
        return self.tracks[0] if repeat is RepeatMode.ALL else None

    def previous_track(self, current, *, shuffle, repeat):
        i = self._index(current)
        if i is None or i == 0:
            return None
        return self.tracks[i - 1]


@pytest.fixture
def audio() -> FakeAudioOutput:
    return FakeAudioOutput()


@pytest.fixture
def make_queue() -> Callable[..., FakeQueue]:
    return lambda *track_ids: FakeQueue(list(track_ids))


@pytest.fixture(autouse=True)
def _no_leaked_session():
    yield
    PlaybackSession._active = None
