"""Tests for the single-attempt delivery client."""

import asyncio
from unittest.mock import patch

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from note_proxy.delivery import (
    MARKDOWN_CONTENT_TYPE,
    MAX_ERROR_BODY,
    NoteDeliveryClient,
    periodic_endpoint,
)
from note_proxy.core import NoteProxyCore
from note_proxy.models import Delivered, ErrorKind, Period, Rejected, TransportFailure

ENDPOINT = "http://localhost:27123/periodic/daily/"


class FakeResponse:
    def __init__(self, status, text=""):
        self.status = status
        self._text = text

    async def text(self, errors="strict"):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession, recording every POST."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.posts = []
        self.kwargs = None

    def __call__(self, *args, **kwargs):
        self.kwargs = kwargs
        return self

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def test_periodic_endpoint():
    assert periodic_endpoint("http://localhost:27123", Period.WEEKLY) == "http://localhost:27123/periodic/weekly/"
    assert periodic_endpoint("https://vault.example/", "daily") == "https://vault.example/periodic/daily/"


@pytest.mark.asyncio
async def test_success_sends_markdown_with_bearer():
    session = FakeSession(FakeResponse(204))
    client = NoteDeliveryClient(session=session)

    outcome = await client.deliver(ENDPOINT, "vault-key", "- café ☕")

    assert outcome == Delivered(204)
    assert outcome.ok is True
    assert len(session.posts) == 1
    post = session.posts[0]
    assert post["url"] == ENDPOINT
    assert post["data"] == "- café ☕".encode("utf-8")
    assert post["headers"] == {
        "Authorization": "Bearer vault-key",
        "Content-Type": MARKDOWN_CONTENT_TYPE,
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 201, 299])
async def test_any_2xx_is_delivered(status):
    client = NoteDeliveryClient(session=FakeSession(FakeResponse(status)))
    assert await client.deliver(ENDPOINT, "k", "x") == Delivered(status)


@pytest.mark.asyncio
async def test_non_2xx_is_rejected_with_body():
    client = NoteDeliveryClient(session=FakeSession(FakeResponse(404, '{"errorCode":40400}')))
    outcome = await client.deliver(ENDPOINT, "k", "x")
    assert outcome == Rejected(404, '{"errorCode":40400}')
    assert outcome.ok is False
    assert outcome.describe().startswith("404")


@pytest.mark.asyncio
async def test_rejected_body_is_truncated():
    client = NoteDeliveryClient(session=FakeSession(FakeResponse(500, "e" * (MAX_ERROR_BODY + 50))))
    outcome = await client.deliver(ENDPOINT, "k", "x")
    assert isinstance(outcome, Rejected)
    assert len(outcome.body) == MAX_ERROR_BODY


@pytest.mark.asyncio
async def test_connection_error_is_transport_failure():
    session = FakeSession(exc=aiohttp.ClientConnectionError("connection refused"))
    outcome = await NoteDeliveryClient(session=session).deliver(ENDPOINT, "k", "x")
    assert outcome == TransportFailure("connection refused")
    assert outcome.ok is False


@pytest.mark.asyncio
async def test_timeout_is_transport_failure():
    session = FakeSession(exc=asyncio.TimeoutError())
    outcome = await NoteDeliveryClient(timeout=2.5, session=session).deliver(ENDPOINT, "k", "x")
    assert outcome == TransportFailure("Timed out after 2.5s")


@pytest.mark.asyncio
async def test_no_retry_on_failure():
    session = FakeSession(FakeResponse(503, "busy"))
    client = NoteDeliveryClient(session=session)
    await client.deliver(ENDPOINT, "k", "x")
    assert len(session.posts) == 1


@pytest.mark.asyncio
async def test_opens_session_with_total_timeout():
    fake = FakeSession(FakeResponse(200))
    with patch("aiohttp.ClientSession", fake):
        outcome = await NoteDeliveryClient(timeout=7).deliver(ENDPOINT, "k", "x")
    assert outcome == Delivered(200)
    assert fake.kwargs["timeout"].total == 7.0


@pytest.mark.asyncio
async def test_injected_session_still_gets_request_timeout():
    session = FakeSession(FakeResponse(200))
    await NoteDeliveryClient(timeout=4, session=session).deliver(ENDPOINT, "k", "x")
    assert session.posts[0]["timeout"].total == 4.0


# --------------------------------------------------------------------------
# Against a live aiohttp server
# --------------------------------------------------------------------------

def obsidian_stub(status, body, content_type="text/plain; charset=utf-8"):
    received = []

    async def append(request):
        received.append(
            {"auth": request.headers.get("Authorization"), "body": await request.text()}
        )
        return web.Response(status=status, body=body, headers={"Content-Type": content_type})

    app = web.Application()
    app.router.add_post("/periodic/{period}/", append)
    return app, received


@pytest.mark.asyncio
async def test_live_server_success():
    app, received = obsidian_stub(204, b"")
    async with TestServer(app) as server:
        endpoint = periodic_endpoint(str(server.make_url("/")), Period.DAILY)
        outcome = await NoteDeliveryClient(timeout=5).deliver(endpoint, "vault-key", "- café")
    assert outcome == Delivered(204)
    assert received == [{"auth": "Bearer vault-key", "body": "- café"}]


@pytest.mark.asyncio
async def test_undecodable_rejection_body_is_still_rejected():
    app, _ = obsidian_stub(400, b"\xff\xfe bad")
    async with TestServer(app) as server:
        endpoint = periodic_endpoint(str(server.make_url("/")), Period.DAILY)
        outcome = await NoteDeliveryClient(timeout=5).deliver(endpoint, "k", "x")
    assert isinstance(outcome, Rejected)
    assert outcome.status_code == 400
    assert outcome.body.endswith(" bad")
    assert "�" in outcome.body


@pytest.mark.asyncio
async def test_undecodable_rejection_keeps_rejected_kind_in_pipeline(db):
    app, _ = obsidian_stub(400, b"\xff\xfe bad")
    async with TestServer(app) as server:
        core = NoteProxyCore(
            db, delivery=NoteDeliveryClient(timeout=5), api_url=str(server.make_url("/"))
        )
        result = await core.deliver_note("personal", "daily", "- note")
    assert result.success is False
    assert result.error_kind is ErrorKind.REJECTED
    assert result.status_code == 400
    assert [n.note for n in await db.queue.list_pending("personal")] == ["- note"]
