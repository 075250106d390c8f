"""Tests for the download engine against a local HTTP server."""

import asyncio
import hashlib

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from loaderkit.downloads import DownloadEngine, DownloadTask
from loaderkit.errors import DownloadTimeout, HashMismatch, NetworkError
from loaderkit.utils.progress import ProgressNotifier

PAYLOAD = b"loaderkit test payload\n" * 4096
SHA1 = hashlib.sha1(PAYLOAD).hexdigest()


class ServerState:
    def __init__(self):
        self.hits = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def hit(self, request):
        self.hits[request.path] = self.hits.get(request.path, 0) + 1


@pytest_asyncio.fixture
async def server():
    state = ServerState()

    async def file(request):
        state.hit(request)
        return web.Response(body=PAYLOAD)

    async def missing(request):
        state.hit(request)
        return web.Response(status=404)

    async def redirect(request):
        state.hit(request)
        raise web.HTTPFound("/file")

    async def slow(request):
        state.hit(request)
        state.in_flight += 1
        state.max_in_flight = max(state.max_in_flight, state.in_flight)
        try:
            await asyncio.sleep(0.02)
        finally:
            state.in_flight -= 1
        return web.Response(body=PAYLOAD)

    async def hang(request):
        state.hit(request)
        await asyncio.sleep(0.5)
        return web.Response(body=PAYLOAD)

    async def truncated(request):
        state.hit(request)
        response = web.StreamResponse()
        response.content_length = len(PAYLOAD)
        await response.prepare(request)
        await response.write(PAYLOAD[:1024])
        request.transport.close()
        return response

    app = web.Application()
    app.router.add_get("/file", file)
    app.router.add_get("/missing", missing)
    app.router.add_get("/redirect", redirect)
    app.router.add_get("/slow/{n}", slow)
    app.router.add_get("/hang", hang)
    app.router.add_get("/truncated", truncated)

    test_server = TestServer(app)
    await test_server.start_server()
    test_server.state = state
    yield test_server
    await test_server.close()


def url(server, path):
    return str(server.make_url(path))


def leftovers(directory):
    return [p.name for p in directory.iterdir() if p.name.endswith(".tmp")]


@pytest.mark.asyncio
async def test_download_verifies_and_places_file(server, tmp_path):
    destination = tmp_path / "a" / "file.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        path = await engine.download_one(url(server, "/file"), destination, SHA1)
    assert path == destination
    assert destination.read_bytes() == PAYLOAD
    assert leftovers(destination.parent) == []


@pytest.mark.asyncio
async def test_existing_valid_file_is_not_downloaded_again(server, tmp_path):
    destination = tmp_path / "file.bin"
    destination.write_bytes(PAYLOAD)
    async with DownloadEngine(retry_delay=0) as engine:
        await engine.download_one(url(server, "/file"), destination, SHA1)
    assert server.state.hits.get("/file", 0) == 0


@pytest.mark.asyncio
async def test_404_exhausts_retries_and_leaves_nothing(server, tmp_path):
    destination = tmp_path / "missing.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(NetworkError) as excinfo:
            await engine.download_one(url(server, "/missing"), destination, retries=3)
    assert excinfo.value.status == 404
    assert server.state.hits["/missing"] == 3
    assert not destination.exists()
    assert leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_hash_mismatch_never_reaches_destination(server, tmp_path):
    destination = tmp_path / "file.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(HashMismatch):
            await engine.download_one(url(server, "/file"), destination, "0" * 40, retries=2)
    assert not destination.exists()
    assert leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_interrupted_stream_leaves_no_destination(server, tmp_path):
    destination = tmp_path / "file.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(NetworkError):
            await engine.download_one(url(server, "/truncated"), destination, retries=1)
    assert not destination.exists()
    assert leftovers(tmp_path) == []


@pytest.mark.asyncio
async def test_interrupted_stream_keeps_previous_file(server, tmp_path):
    destination = tmp_path / "file.bin"
    destination.write_bytes(b"old contents")
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(NetworkError):
            await engine.download_one(url(server, "/truncated"), destination, SHA1, retries=1)
    assert destination.read_bytes() == b"old contents"


@pytest.mark.asyncio
async def test_redirect_is_followed(server, tmp_path):
    destination = tmp_path / "file.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        await engine.download_one(url(server, "/redirect"), destination, SHA1)
    assert destination.read_bytes() == PAYLOAD
    assert server.state.hits["/redirect"] == 1
    assert server.state.hits["/file"] == 1


@pytest.mark.asyncio
async def test_timeout_is_reported(server, tmp_path):
    async with DownloadEngine(timeout=0.05, retry_delay=0) as engine:
        with pytest.raises(DownloadTimeout):
            await engine.download_one(url(server, "/hang"), tmp_path / "file.bin", retries=1)


@pytest.mark.asyncio
async def test_mirror_fallback(server, tmp_path):
    task = DownloadTask(url=url(server, "/missing"), mirrors=[url(server, "/file")],
                        destination=tmp_path / "file.bin", expected_hash=SHA1, retries=2)
    async with DownloadEngine(retry_delay=0) as engine:
        await engine.download_task(task)
    assert server.state.hits["/missing"] == 2
    assert (tmp_path / "file.bin").read_bytes() == PAYLOAD


@pytest.mark.asyncio
async def test_batch_respects_concurrency_and_accounts_for_every_task(server, tmp_path):
    tasks = [DownloadTask(url=url(server, f"/slow/{n}"), destination=tmp_path / f"{n}.bin",
                          expected_hash=SHA1, retries=1) for n in range(12)]
    tasks += [DownloadTask(url=url(server, "/missing"), destination=tmp_path / f"missing-{n}.bin",
                           retries=1) for n in range(3)]
    events = []

    async with DownloadEngine(retry_delay=0, notifier=ProgressNotifier([events.append])) as engine:
        result = await engine.download_many(tasks, concurrency=3)

    assert server.state.max_in_flight <= 3
    assert len(result.succeeded) == 12
    assert len(result.failed) == 3
    assert result.total == len(tasks)
    assert {f.error_type for f in result.failed} == {"NetworkError"}
    assert events[-1].completed == events[-1].total == len(tasks)


@pytest.mark.asyncio
async def test_retry_failures_runs_one_more_pass(server, tmp_path):
    task = DownloadTask(url=url(server, "/missing"), destination=tmp_path / "x.bin", retries=1)
    async with DownloadEngine(retry_delay=0) as engine:
        result = await engine.download_many([task])
        retried = await engine.retry_failures(result)
    assert len(retried.failed) == 1
    assert server.state.hits["/missing"] == 2


def test_concurrency_scales_with_queue():
    engine = DownloadEngine()
    assert engine.concurrency_for(5) == 10
    assert engine.concurrency_for(2500) == 25
    assert engine.concurrency_for(100000) == 50


@pytest.mark.asyncio
async def test_redirect_with_no_budget_left_fails(server, tmp_path):
    destination = tmp_path / "file.bin"
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(NetworkError):
            await engine.download_one(url(server, "/redirect"), destination, SHA1, retries=1)
    assert server.state.hits["/redirect"] == 1
    assert "/file" not in server.state.hits
    assert not destination.exists()


@pytest.mark.asyncio
async def test_last_mirror_error_is_raised(server, tmp_path):
    task = DownloadTask(url=url(server, "/file"), mirrors=[url(server, "/missing")],
                        destination=tmp_path / "file.bin", expected_hash="0" * 40, retries=1)
    async with DownloadEngine(retry_delay=0) as engine:
        with pytest.raises(NetworkError) as excinfo:
            await engine.download_task(task)
    assert excinfo.value.status == 404
    assert server.state.hits["/file"] == 1
    assert not (tmp_path / "file.bin").exists()
