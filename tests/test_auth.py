"""
Tests for session/role resolution and role-gated routing.

Tests cover:
- Credential validation and friendly error messages
- AuthState role re-checks on every session change
- Routing decisions and page redirects
- Session endpoints
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from swiftlogix.auth import (
    AuthState,
    RouteDecision,
    SessionProvider,
    friendly_auth_error,
    validate_credentials,
)
from swiftlogix.backend import AuthSession, AuthUser
from swiftlogix.errors import BackendError, ValidationError


class FakeSessionProvider(SessionProvider):
    """Session provider whose session and change events are driven by the test."""

    def __init__(self, session: Optional[AuthSession] = None):
        super().__init__()
        self.session = session

    async def get_session(self) -> Optional[AuthSession]:
        return self.session

    async def emit(self, event: str, session: Optional[AuthSession]) -> None:
        self.session = session
        await self._notify(event, session)


USER_SESSION = AuthSession(access_token="token-1", user=AuthUser(id="user-1", email="a@example.com"))


class TestCredentials:
    def test_valid(self):
        validate_credentials("a@example.com", "secret1", "secret1")

    @pytest.mark.parametrize("email,password,confirm,message", [
        ("not-an-email", "secret1", None, "Please enter a valid email address"),
        ("a@example.com", "short", None, "Password must be at least 6 characters"),
        ("a@example.com", "secret1", "secret2", "Passwords do not match"),
    ])
    def test_invalid(self, email, password, confirm, message):
        with pytest.raises(ValidationError) as exc_info:
            validate_credentials(email, password, confirm)
        assert exc_info.value.message == message

    def test_friendly_errors(self):
        assert friendly_auth_error("Invalid login credentials") == "Invalid email or password"
        assert friendly_auth_error("User already registered") == "An account with this email already exists"
        assert friendly_auth_error("Rate limited") == "Rate limited"


class TestAuthState:
    """Test AuthState against a fake provider."""

    def test_loading_before_start(self):
        state = AuthState(FakeSessionProvider(), AsyncMock())
        assert state.decide() is RouteDecision.LOADING

    def test_signed_out(self):
        backend = AsyncMock()
        state = AuthState(FakeSessionProvider(), backend)

        asyncio.run(state.start())

        assert state.user is None
        assert state.decide() is RouteDecision.SIGN_IN
        assert state.decide(require_admin=True) is RouteDecision.SIGN_IN
        backend.rpc.assert_not_awaited()

    def test_customer_is_sent_home_from_admin(self):
        backend = AsyncMock()
        backend.rpc.return_value = False
        state = AuthState(FakeSessionProvider(USER_SESSION), backend)

        asyncio.run(state.start())

        assert state.decide() is RouteDecision.ALLOW
        assert state.decide(require_admin=True) is RouteDecision.HOME

    def test_admin_allowed(self):
        backend = AsyncMock()
        backend.rpc.return_value = True
        state = AuthState(FakeSessionProvider(USER_SESSION), backend)

        asyncio.run(state.start())

        assert state.is_admin is True
        assert state.decide(require_admin=True) is RouteDecision.ALLOW
        backend.rpc.assert_awaited_with("has_role", {"_user_id": "user-1", "_role": "admin"})

    def test_role_rechecked_on_every_change(self):
        backend = AsyncMock()
        backend.rpc.side_effect = [False, True]
        provider = FakeSessionProvider(USER_SESSION)
        state = AuthState(provider, backend)

        async def scenario():
            await state.start()
            before = state.is_admin
            await provider.emit("TOKEN_REFRESHED", USER_SESSION)
            return before

        assert asyncio.run(scenario()) is False
        assert state.is_admin is True
        assert backend.rpc.await_count == 2

    def test_sign_out_clears_admin(self):
        backend = AsyncMock()
        backend.rpc.return_value = True
        provider = FakeSessionProvider(USER_SESSION)
        state = AuthState(provider, backend)

        async def scenario():
            await state.start()
            await provider.emit("SIGNED_OUT", None)

        asyncio.run(scenario())

        assert state.user is None
        assert state.is_admin is False
        assert state.decide(require_admin=True) is RouteDecision.SIGN_IN

    def test_role_check_failure_means_not_admin(self):
        backend = AsyncMock()
        backend.rpc.side_effect = BackendError("timeout")
        state = AuthState(FakeSessionProvider(USER_SESSION), backend)

        asyncio.run(state.start())

        assert state.is_admin is False
        assert state.decide(require_admin=True) is RouteDecision.HOME

    def test_stop_unsubscribes(self):
        backend = AsyncMock()
        backend.rpc.return_value = False
        provider = FakeSessionProvider(USER_SESSION)
        state = AuthState(provider, backend)

        async def scenario():
            async with state:
                pass
            await provider.emit("SIGNED_OUT", None)

        asyncio.run(scenario())

        assert state.user == USER_SESSION.user


class TestPageRouting:
    """Test redirects of the gated pages."""

    def test_dashboard_sends_guests_to_sign_in(self, client):
        response = client.get("/dashboard", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/auth"

    def test_dashboard_for_customer(self, client, customer):
        response = client.get("/dashboard", headers={"Authorization": f"Bearer {customer.access_token}"})

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]

    def test_admin_sends_guests_to_sign_in(self, client):
        response = client.get("/admin", follow_redirects=False)
        assert response.headers["location"] == "/auth"

    def test_admin_sends_customers_home(self, client, customer):
        response = client.get(
            "/admin", headers={"Authorization": f"Bearer {customer.access_token}"}, follow_redirects=False
        )

        assert response.status_code == 307
        assert response.headers["location"] == "/"

    def test_admin_for_admin(self, client, admin):
        response = client.get("/admin", headers={"Authorization": f"Bearer {admin.access_token}"})
        assert response.status_code == 200

    def test_auth_page_skipped_when_signed_in(self, client, customer):
        response = client.get(
            "/auth", headers={"Authorization": f"Bearer {customer.access_token}"}, follow_redirects=False
        )
        assert response.headers["location"] == "/dashboard"

    def test_auth_cookie_is_accepted(self, client, customer):
        client.cookies.set("sb-access-token", customer.access_token)

        response = client.get("/dashboard", follow_redirects=False)

        assert response.status_code == 200


class TestSessionEndpoints:
    """Test /api/auth/* against the local backend."""

    def test_session_signed_out(self, client):
        response = client.get("/api/auth/session")
        assert response.json() == {"user": None, "is_admin": False}

    def test_session_for_admin(self, client, admin):
        response = client.get("/api/auth/session", headers={"Authorization": f"Bearer {admin.access_token}"})

        assert response.json() == {
            "user": {"id": "user-admin", "email": "ops@swiftlogix.com"},
            "is_admin": True,
        }

    def test_sign_in_validates_before_backend(self, client):
        response = client.post("/api/auth/sign-in", json={"email": "nope", "password": "secret1"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Please enter a valid email address"

    def test_sign_up_password_mismatch(self, client):
        response = client.post("/api/auth/sign-up", json={
            "email": "new@example.com", "password": "secret1", "confirm_password": "secret2",
        })

        assert response.status_code == 400
        assert response.json()["detail"] == "Passwords do not match"

    def test_password_sign_in_needs_hosted_backend(self, client):
        response = client.post("/api/auth/sign-in", json={"email": "a@example.com", "password": "secret1"})

        assert response.status_code == 400
        assert "hosted backend" in response.json()["detail"]

    def test_sign_out(self, client, customer):
        headers = {"Authorization": f"Bearer {customer.access_token}"}

        response = client.post("/api/auth/sign-out", headers=headers)

        assert response.status_code == 200
        assert response.json()["user"] is None
        assert client.get("/api/auth/session", headers=headers).json()["user"] is None
