import json
from datetime import datetime, timezone

import httpx
import pytest

from portalauth.context import create_auth_context
from portalauth.core.auth.session_control import SessionManager
from portalauth.core.config import AppConfig, PathConfig, PortalConfig
from portalauth.core.http.client import ApiClient
from portalauth.core.storage.backends import MemoryBackend, Scope
from portalauth.core.storage.token_store import TokenStore
from portalauth.utils.clock import ManualClock

BASE_URL = "http://auth.test"


class FakeAuthApi:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def reply(self, method, path, status=200, body=None):
        """Queue a response; the last one queued for a route repeats."""
        self.routes.setdefault((method, path), []).append((status, body))

    def fail(self, method, path, exc):
        """Make a route raise a transport error instead of answering."""
        self.routes[(method, path)] = [(exc, None)]

    def sent(self, method=None, path=None):
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or r.url.path == path)
        ]

    def body_of(self, request):
        return json.loads(request.content) if request.content else None

    def __call__(self, request):
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "Not found"})
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(status, Exception):
            raise status
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


@pytest.fixture
def clock():
    return ManualClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def config(tmp_path):
    return PortalConfig(
        paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
        app=AppConfig(environment="test"),
    )


@pytest.fixture
def backends():
    return {Scope.SESSION: MemoryBackend(), Scope.PERSISTENT: MemoryBackend()}


@pytest.fixture
def store(backends, clock):
    return TokenStore(backends, clock=clock)


@pytest.fixture
def fake_api():
    return FakeAuthApi()


@pytest.fixture
def api_client(fake_api):
    return ApiClient(BASE_URL, transport=httpx.MockTransport(fake_api))


@pytest.fixture
def navigated():
    return []


@pytest.fixture
def manager(store, api_client, config, clock, navigated):
    sessions = SessionManager(
        store, api_client, config=config, clock=clock, navigator=navigated.append
    )
    api_client.set_credential_providers(sessions.get_token, sessions.get_csrf_token)
    return sessions


@pytest.fixture
async def context(config, fake_api, clock, navigated):
    ctx = create_auth_context(
        config,
        transport=httpx.MockTransport(fake_api),
        clock=clock,
        navigator=navigated.append,
        persistent_backend=MemoryBackend(),
    )
    yield ctx
    await ctx.aclose()
