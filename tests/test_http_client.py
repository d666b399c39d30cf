"""Tests for the API client and error mapping."""

import httpx
import pytest

from portalauth.core.errors import (
    ApiError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    UnauthorizedError,
)
from portalauth.core.http.client import CSRF_HEADER, ApiClient

BASE_URL = "http://auth.test"


@pytest.fixture
def client(fake_api):
    return ApiClient(
        BASE_URL,
        transport=httpx.MockTransport(fake_api),
        token_provider=lambda: "tok",
        csrf_provider=lambda: "csrf-value",
    )


class TestHeaders:

    async def test_bearer_and_csrf_on_post(self, client, fake_api):
        fake_api.reply("POST", "/items", 201, {"ok": True})

        assert await client.post("/items", {"a": 1}) == {"ok": True}

        request = fake_api.requests[0]
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers[CSRF_HEADER] == "csrf-value"
        assert request.headers["Accept"] == "application/json"

    async def test_get_has_no_csrf(self, client, fake_api):
        fake_api.reply("GET", "/items", 200, [])

        await client.get("/items")

        assert CSRF_HEADER not in fake_api.requests[0].headers

    async def test_auth_false_skips_bearer(self, client, fake_api):
        fake_api.reply("POST", "/api/auth/login", 200, {"token": "t"})

        await client.post("/api/auth/login", {}, auth=False)

        assert "Authorization" not in fake_api.requests[0].headers

    async def test_no_provider_no_headers(self, fake_api):
        fake_api.reply("DELETE", "/items/1", 204)
        client = ApiClient(BASE_URL, transport=httpx.MockTransport(fake_api))

        assert await client.delete("/items/1") is None
        assert "Authorization" not in fake_api.requests[0].headers
        await client.aclose()


class TestResponses:

    async def test_text_body_returned_as_text(self, fake_api):
        def handler(request):
            return httpx.Response(200, text="pong")

        async with ApiClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            assert await client.get("/ping") == "pong"

    @pytest.mark.parametrize("status, error_cls", [
        (400, ApiError),
        (401, UnauthorizedError),
        (403, PermissionDeniedError),
        (404, NotFoundError),
        (503, ServerError),
    ])
    async def test_status_mapping(self, client, fake_api, status, error_cls):
        fake_api.reply("PUT", "/items/1", status, {"message": "nope", "code": 7})

        with pytest.raises(error_cls) as excinfo:
            await client.put("/items/1", {})

        assert excinfo.value.status == status
        assert str(excinfo.value) == "nope"
        assert excinfo.value.payload == {"message": "nope", "code": 7}

    async def test_error_without_message(self, client, fake_api):
        fake_api.reply("PATCH", "/items/1", 500)

        with pytest.raises(ServerError) as excinfo:
            await client.patch("/items/1", {})

        assert "500" in str(excinfo.value)

    async def test_connection_failure(self, client, fake_api):
        fake_api.fail("GET", "/items", httpx.ConnectError("refused"))

        with pytest.raises(NetworkError):
            await client.get("/items")

    async def test_timeout(self, client, fake_api):
        fake_api.fail("GET", "/slow", httpx.ReadTimeout("slow"))

        with pytest.raises(NetworkError) as excinfo:
            await client.get("/slow")

        assert "timed out" in str(excinfo.value)
