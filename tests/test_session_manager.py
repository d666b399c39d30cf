"""Unit tests for the session manager.

Tests for:
- Session start, lookup and clearing
- Storage scope placement (remember me)
- Role and permission checks
- Login with attempt counting and lockout
- Logout, registration and token refresh
- Expired session eviction
"""

import hashlib
import re

import httpx
import pytest

from portalauth.core.auth.events import AUTH_CHANGE
from portalauth.core.auth.models import User
from portalauth.core.auth.session_control import CSRF_KEY, SESSION_KEY, USER_KEY, SessionManager
from portalauth.core.errors import (
    InvalidCredentials,
    LockedOut,
    ServerError,
    ValidationError,
)
from portalauth.core.storage.backends import Scope
from portalauth.utils.clock import to_millis

LOGIN = "/api/auth/login"
LOGOUT = "/api/auth/logout"
REGISTER = "/api/auth/register"
REFRESH = "/api/auth/refresh-token"

ALICE = {
    "id": "u-1",
    "email": "alice@example.com",
    "roles": ["editor"],
    "permissions": ["read", "write"],
    "displayName": "Alice",
}


def sha256_hex(text):
    return hashlib.sha256(text.encode()).hexdigest()


class TestStartAndClear:

    def test_round_trip(self, manager):
        user = manager.start_session("tok-1", ALICE, 3600)

        assert manager.get_session().token == "tok-1"
        assert manager.get_user() == user
        assert user.email == "alice@example.com"
        assert user.profile == {"displayName": "Alice"}
        assert manager.is_authenticated() is True

    def test_default_lifetime_from_config(self, manager, clock, config):
        manager.start_session("tok", ALICE)

        remaining = manager.get_session().seconds_remaining(clock())
        assert remaining == config.session.max_age_seconds

    def test_clear_removes_everything(self, manager, store):
        manager.start_session("tok", ALICE, 3600, remember_me=True)

        manager.clear_session()

        assert manager.get_session() is None
        assert manager.get_user() is None
        assert manager.get_csrf_token() is None
        assert manager.is_authenticated() is False
        for scope in Scope:
            for key in (SESSION_KEY, USER_KEY, CSRF_KEY):
                assert not store.has(scope, key)

    def test_state_survives_a_new_manager(self, manager, store, api_client, config, clock):
        manager.start_session("tok", ALICE, 3600)

        fresh = SessionManager(store, api_client, config=config, clock=clock)

        assert fresh.get_session().token == "tok"
        assert fresh.get_user().id == "u-1"
        assert fresh.get_csrf_token() == manager.get_csrf_token()


class TestScopes:

    def test_default_uses_session_scope(self, manager, store):
        manager.start_session("tok", ALICE, 3600)

        assert store.has(Scope.SESSION, SESSION_KEY)
        assert not store.has(Scope.PERSISTENT, SESSION_KEY)

    def test_remember_me_uses_persistent_scope(self, manager, store):
        manager.start_session("tok", ALICE, 3600, remember_me=True)

        assert store.has(Scope.PERSISTENT, SESSION_KEY)
        assert store.has(Scope.PERSISTENT, USER_KEY)
        assert not store.has(Scope.SESSION, SESSION_KEY)

    def test_switching_scope_leaves_one_copy(self, manager, store):
        manager.start_session("tok", ALICE, 3600, remember_me=True)
        manager.start_session("tok-2", ALICE, 3600)

        assert store.get(Scope.SESSION, SESSION_KEY)["token"] == "tok-2"
        assert not store.has(Scope.PERSISTENT, SESSION_KEY)

    def test_csrf_written_to_both_scopes(self, manager, store):
        manager.start_session("tok", ALICE, 3600)

        csrf = manager.get_csrf_token()
        assert re.fullmatch(r"[0-9a-f]{64}", csrf)
        assert store.get(Scope.SESSION, CSRF_KEY) == csrf
        assert store.get(Scope.PERSISTENT, CSRF_KEY) == csrf

    def test_csrf_regenerated_per_session(self, manager):
        manager.start_session("tok", ALICE, 3600)
        first = manager.get_csrf_token()
        manager.start_session("tok-2", ALICE, 3600)

        assert manager.get_csrf_token() != first


class TestAuthorization:

    def test_has_role_is_any_of(self, manager):
        manager.start_session("tok", {**ALICE, "roles": ["a"]}, 3600)

        assert manager.has_role(["a", "b"]) is True
        assert manager.has_role("a") is True
        assert manager.has_role(["b", "c"]) is False

    def test_has_permission_is_all_of(self, manager):
        manager.start_session("tok", {**ALICE, "permissions": ["x"]}, 3600)

        assert manager.has_permission("x") is True
        assert manager.has_permission(["x", "y"]) is False

    def test_scalar_role_in_payload(self, manager):
        manager.start_session("tok", {**ALICE, "roles": "admin"}, 3600)

        assert manager.has_role("admin") is True

    def test_signed_out_has_nothing(self, manager):
        assert manager.has_role("editor") is False
        assert manager.has_permission("read") is False


class TestExpiry:

    def test_expired_stored_session_is_evicted(self, store, api_client, config, clock):
        store.set(Scope.SESSION, SESSION_KEY, {"token": "old", "expiresAt": to_millis(clock()) - 1000})
        store.set(Scope.SESSION, USER_KEY, ALICE)
        manager = SessionManager(store, api_client, config=config, clock=clock)

        assert manager.get_session() is None
        assert not store.has(Scope.SESSION, SESSION_KEY)
        assert manager.get_user() is None

    def test_cached_session_expires_with_the_clock(self, manager, clock):
        manager.start_session("tok", ALICE, 3600)

        clock.advance(seconds=3600)

        assert manager.is_authenticated() is False

    def test_malformed_stored_session_is_ignored(self, store, api_client, config, clock):
        store.set(Scope.SESSION, SESSION_KEY, {"token": ""})
        manager = SessionManager(store, api_client, config=config, clock=clock)

        assert manager.get_session() is None
        assert not store.has(Scope.SESSION, SESSION_KEY)

    def test_out_of_range_expiry_is_discarded(self, store, api_client, config, clock):
        store.set(Scope.PERSISTENT, SESSION_KEY, {"token": "t", "expiresAt": 1e300})
        manager = SessionManager(store, api_client, config=config, clock=clock)

        assert manager.get_session() is None
        assert manager.is_authenticated() is False
        assert not store.has(Scope.PERSISTENT, SESSION_KEY)


class TestEvents:

    def test_start_and_clear_publish_auth_change(self, manager):
        events = []
        manager.on(AUTH_CHANGE, events.append)

        manager.start_session("tok", ALICE, 3600)
        manager.clear_session()

        assert [e.is_authenticated for e in events] == [True, False]
        assert events[0].user.id == "u-1"
        assert events[1].user is None

    def test_storage_written_before_dispatch(self, manager, store):
        seen = []
        manager.on(AUTH_CHANGE, lambda event: seen.append(store.get(Scope.SESSION, SESSION_KEY)))

        manager.start_session("tok", ALICE, 3600)

        assert seen[0]["token"] == "tok"


class TestRefreshTimer:

    def test_delay_from_expiry(self, manager):
        manager.start_session("tok", ALICE, 3600)

        assert manager.scheduler.delay == 3300

    def test_short_sessions_use_minimum_delay(self, manager):
        manager.start_session("tok", ALICE, 100)

        assert manager.scheduler.delay == 60

    def test_resume_arms_from_remaining_lifetime(self, manager, store, api_client, config, clock):
        manager.start_session("tok", ALICE, 3600, remember_me=True)
        clock.advance(seconds=600)

        fresh = SessionManager(store, api_client, config=config, clock=clock)

        assert fresh.resume() is True
        assert fresh.scheduler.delay == 2700

    def test_resume_without_session(self, manager):
        assert manager.resume() is False


class TestLogin:

    async def test_success_sends_digest_and_starts_session(self, manager, fake_api):
        fake_api.reply("POST", LOGIN, 200, {"token": "tok", "user": ALICE, "expiresIn": 3600})

        user = await manager.login("alice@example.com", "Sup3r!secret")

        sent = fake_api.body_of(fake_api.sent("POST", LOGIN)[0])
        assert sent == {"email": "alice@example.com", "password": sha256_hex("Sup3r!secret")}
        assert user.id == "u-1"
        assert manager.get_session().token == "tok"
        manager.scheduler.cancel()

    async def test_remember_me_login(self, manager, fake_api, store):
        fake_api.reply("POST", LOGIN, 200, {"token": "tok", "user": ALICE, "expiresIn": 3600})

        await manager.login("alice@example.com", "pw", remember_me=True)

        assert store.has(Scope.PERSISTENT, SESSION_KEY)
        manager.scheduler.cancel()

    async def test_rejections_count_down_then_lock(self, manager, fake_api):
        fake_api.reply("POST", LOGIN, 401, {"message": "Invalid credentials"})

        for remaining in (4, 3, 2, 1):
            with pytest.raises(InvalidCredentials) as excinfo:
                await manager.login("alice@example.com", "wrong")
            assert excinfo.value.remaining_attempts == remaining

        with pytest.raises(LockedOut) as excinfo:
            await manager.login("alice@example.com", "wrong")
        assert excinfo.value.minutes == 15
        assert str(excinfo.value).startswith("Account locked.")

        with pytest.raises(LockedOut):
            await manager.login("alice@example.com", "right")
        assert len(fake_api.sent("POST", LOGIN)) == 5

    async def test_success_resets_attempts(self, manager, fake_api):
        fake_api.reply("POST", LOGIN, 401, {"message": "Invalid credentials"})
        fake_api.reply("POST", LOGIN, 200, {"token": "tok", "user": ALICE})

        with pytest.raises(InvalidCredentials):
            await manager.login("alice@example.com", "wrong")
        await manager.login("alice@example.com", "right")

        assert manager.tracker.attempts == 0
        manager.scheduler.cancel()

    async def test_lockout_lapses(self, manager, fake_api, clock):
        fake_api.reply("POST", LOGIN, 401, {"message": "Invalid credentials"})
        for _ in range(4):
            with pytest.raises(InvalidCredentials):
                await manager.login("alice@example.com", "wrong")
        with pytest.raises(LockedOut):
            await manager.login("alice@example.com", "wrong")

        clock.advance(minutes=15)

        with pytest.raises(InvalidCredentials) as excinfo:
            await manager.login("alice@example.com", "wrong")
        assert excinfo.value.remaining_attempts == 4

    async def test_server_errors_pass_through(self, manager, fake_api):
        fake_api.reply("POST", LOGIN, 500, {"message": "down"})

        with pytest.raises(ServerError):
            await manager.login("alice@example.com", "pw")
        assert manager.tracker.attempts == 0


class TestLogout:

    async def test_clears_locally_and_notifies(self, manager, fake_api, navigated):
        fake_api.reply("POST", LOGOUT, 204)
        manager.start_session("tok", ALICE, 3600)

        task = manager.logout()

        assert manager.is_authenticated() is False
        assert navigated == ["/login"]
        await task
        assert len(fake_api.sent("POST", LOGOUT)) == 1

    async def test_failed_notification_is_swallowed(self, manager, fake_api):
        fake_api.reply("POST", LOGOUT, 500, {"message": "down"})
        manager.start_session("tok", ALICE, 3600)

        task = manager.logout(redirect=False)
        await task

        assert task.exception() is None
        assert manager.is_authenticated() is False

    async def test_closed_client_is_swallowed(self, manager, api_client):
        manager.start_session("tok", ALICE, 3600)
        await api_client.aclose()

        task = manager.logout(redirect=False)
        await task

        assert task.exception() is None
        assert manager.is_authenticated() is False

    async def test_unexpected_transport_error_is_swallowed(self, manager, fake_api):
        fake_api.fail("POST", LOGOUT, httpx.TooManyRedirects("loop"))
        manager.start_session("tok", ALICE, 3600)

        task = manager.logout(redirect=False)
        await task

        assert task.exception() is None

    def test_without_event_loop(self, manager, navigated):
        manager.start_session("tok", ALICE, 3600)

        assert manager.logout(redirect=False) is None
        assert manager.is_authenticated() is False
        assert navigated == []


class TestRegister:

    async def test_hashes_password_without_touching_input(self, manager, fake_api):
        fake_api.reply("POST", REGISTER, 201, {"user": ALICE})
        data = {"email": "alice@example.com", "password": "Sup3r!secret"}

        user = await manager.register(data)

        assert data["password"] == "Sup3r!secret"
        sent = fake_api.body_of(fake_api.sent("POST", REGISTER)[0])
        assert sent["password"] == sha256_hex("Sup3r!secret")
        assert user.email == "alice@example.com"
        assert manager.is_authenticated() is False

    async def test_token_in_response_signs_in(self, manager, fake_api):
        fake_api.reply("POST", REGISTER, 201, {"user": ALICE, "token": "tok", "expiresIn": 3600})

        await manager.register({"email": "alice@example.com", "password": "pw"})

        assert manager.get_session().token == "tok"
        manager.scheduler.cancel()

    async def test_field_errors_become_validation_error(self, manager, fake_api):
        fake_api.reply("POST", REGISTER, 400, {
            "message": "Validation failed",
            "errors": {"email": ["Email already registered"], "password": "Too weak"},
        })

        with pytest.raises(ValidationError) as excinfo:
            await manager.register({"email": "alice@example.com", "password": "pw"})

        assert excinfo.value.field_errors == {
            "email": ["Email already registered"],
            "password": ["Too weak"],
        }


class TestRefresh:

    async def test_failure_signs_out_without_raising(self, manager, fake_api):
        fake_api.reply("POST", REFRESH, 500, {"message": "down"})
        manager.start_session("tok", ALICE, 3600)

        assert await manager.refresh_token() is False
        assert manager.is_authenticated() is False

    async def test_network_failure_signs_out(self, manager, fake_api):
        fake_api.fail("POST", REFRESH, httpx.ConnectError("offline"))
        manager.start_session("tok", ALICE, 3600)

        assert await manager.refresh_token() is False
        assert manager.is_authenticated() is False

    async def test_keeps_user_and_scope(self, manager, fake_api, store):
        fake_api.reply("POST", REFRESH, 200, {"token": "new", "expiresIn": 7200})
        manager.start_session("tok", ALICE, 3600, remember_me=True)

        assert await manager.refresh_token() is True

        assert manager.get_session().token == "new"
        assert manager.get_user().id == "u-1"
        assert store.get(Scope.PERSISTENT, SESSION_KEY)["token"] == "new"
        assert manager.scheduler.delay == 6900
        manager.scheduler.cancel()

    async def test_no_token_keeps_session(self, manager, fake_api):
        fake_api.reply("POST", REFRESH, 200, {})
        manager.start_session("tok", ALICE, 3600)

        assert await manager.refresh_token() is False
        assert manager.get_session().token == "tok"
        manager.scheduler.cancel()

    async def test_foreground_hook_refreshes(self, manager, fake_api):
        fake_api.reply("POST", REFRESH, 200, {"token": "new"})
        manager.start_session("tok", ALICE, 3600)

        await manager.on_visibility_change(True)

        assert manager.get_session().token == "new"
        manager.scheduler.cancel()


class TestUserModel:

    def test_payload_round_trip_keeps_profile(self):
        user = User.from_payload({**ALICE, "identifier": "ignored"})

        assert User.from_payload(user.to_payload()) == user
