"""Tests for RequestManager, using httpx.MockTransport in place of the network."""

import asyncio
import json
import logging

import httpx
import pytest

from cellsync import Failure, RequestManager, RequestTimeoutError, Success
from cellsync.errors import NetworkError, RequestEncodeError


def _manager(handler, **kwargs):
    kwargs.setdefault("base_url", "https://api.test")
    return RequestManager(transport=httpx.MockTransport(handler), **kwargs)


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_success(self):
        api = _manager(lambda request: httpx.Response(200, json={"id": 1}))
        outcome = await api.get("/users/1")
        assert outcome == Success({"id": 1}, 200)
        assert outcome.ok
        assert api.error.get() is None
        await api.aclose()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        api = _manager(lambda request: httpx.Response(404, json={"detail": "missing"}))
        outcome = await api.get("/users/999")
        assert isinstance(outcome, Failure)
        assert outcome.status == 404
        assert outcome.message == "HTTP 404: Not Found"
        assert api.error.get() == "HTTP 404: Not Found"
        await api.aclose()

    @pytest.mark.asyncio
    async def test_empty_body(self):
        api = _manager(lambda request: httpx.Response(204))
        outcome = await api.delete("/users/1")
        assert outcome == Success(None, 204)
        await api.aclose()

    @pytest.mark.asyncio
    async def test_undecodable_body(self):
        api = _manager(lambda request: httpx.Response(200, text="<html>"))
        outcome = await api.get("/page")
        assert not outcome.ok
        assert outcome.status == 200
        assert "Invalid JSON" in outcome.message
        await api.aclose()

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = _manager(handler)
        outcome = await api.get("/")
        assert not outcome.ok
        assert outcome.status is None
        assert "connection refused" in outcome.message
        assert isinstance(outcome.cause, NetworkError)
        await api.aclose()

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        api = _manager(lambda request: httpx.Response(200, json={}))
        outcome = await api.get("http://exa\x01mple.com/")
        assert not outcome.ok
        assert isinstance(outcome.cause, NetworkError)
        assert api.error.get() == outcome.message
        assert api.loading.get() is False
        await api.aclose()

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception(self, caplog):
        def handler(request):
            raise OSError("disk on fire")

        api = _manager(handler)
        with caplog.at_level(logging.ERROR, logger="cellsync.request"):
            outcome = await api.get("/")
        assert not outcome.ok
        assert "OSError: disk on fire" in outcome.message
        assert isinstance(outcome.cause, NetworkError)
        assert "raised in transport" in caplog.text
        assert api.loading.get() is False
        await api.aclose()

    @pytest.mark.asyncio
    async def test_unencodable_body(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={})

        async with _manager(handler) as api:
            outcome = await api.post("/x", data={"when": object()})
            assert not outcome.ok
            assert outcome.message.startswith("Cannot encode request body:")
            assert isinstance(outcome.cause, RequestEncodeError)
            assert api.error.get() == outcome.message
            assert api.loading.get() is False
        assert sent == []


class TestTimeout:
    @pytest.mark.asyncio
    async def test_transport_that_never_completes(self):
        async def handler(request):
            await asyncio.sleep(10)
            return httpx.Response(200, json={})

        api = _manager(handler, timeout=0.05)
        outcome = await api.get("/slow")
        assert isinstance(outcome, Failure)
        assert "timed out" in outcome.message
        assert isinstance(outcome.cause, RequestTimeoutError)
        assert api.loading.get() is False
        assert api.error.get() == outcome.message
        await api.aclose()

    @pytest.mark.asyncio
    async def test_per_request_timeout(self):
        async def handler(request):
            await asyncio.sleep(0.2)
            return httpx.Response(200, json={"late": True})

        api = _manager(handler, timeout=0.01)
        outcome = await api.get("/slow", timeout=2)
        assert outcome == Success({"late": True}, 200)
        await api.aclose()


class TestState:
    @pytest.mark.asyncio
    async def test_loading_between_issue_and_outcome(self):
        gate = asyncio.Event()

        async def handler(request):
            await gate.wait()
            return httpx.Response(200, json=[])

        api = _manager(handler)
        transitions = []
        api.loading.subscribe(lambda new, old: transitions.append(new))

        task = asyncio.create_task(api.get("/items"))
        await asyncio.sleep(0)
        assert api.loading.get() is True
        gate.set()
        await task
        assert api.loading.get() is False
        assert transitions == [True, False]
        await api.aclose()

    @pytest.mark.asyncio
    async def test_error_cleared_on_next_request(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"ok": True})])
        api = _manager(lambda request: next(responses))
        await api.get("/flaky")
        assert api.error.get() == "HTTP 500: Internal Server Error"

        seen = []
        api.error.subscribe(lambda new, old: seen.append(new))
        await api.get("/flaky")
        assert seen == [None]
        await api.aclose()


class TestRequestShape:
    @pytest.mark.asyncio
    async def test_default_content_type(self):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json={})

        api = _manager(handler)
        await api.get("/x")
        assert captured[0].headers["content-type"] == "application/json"
        await api.aclose()

    @pytest.mark.asyncio
    async def test_headers_override_defaults(self):
        captured = []

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json={})

        api = _manager(handler, headers={"Authorization": "Bearer t"})
        await api.get("/x", headers={"content-type": "text/plain"})
        request = captured[0]
        assert request.headers["authorization"] == "Bearer t"
        assert request.headers.get_list("content-type") == ["text/plain"]
        await api.aclose()

    @pytest.mark.asyncio
    async def test_post_and_put_encode_body(self):
        captured = []

        def handler(request):
            captured.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(201, json={"saved": True})

        async with _manager(handler) as api:
            assert await api.post("/users", {"name": "Ada"}) == Success({"saved": True}, 201)
            await api.put("/users/1", {"name": "Grace"})

        assert captured == [
            ("POST", "/users", {"name": "Ada"}),
            ("PUT", "/users/1", {"name": "Grace"}),
        ]

    @pytest.mark.asyncio
    async def test_post_without_body(self):
        captured = []

        def handler(request):
            captured.append(request.content)
            return httpx.Response(200, json={})

        async with _manager(handler) as api:
            await api.post("/ping")
        assert captured == [b""]
