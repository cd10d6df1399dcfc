"""
Tests for the session state machine and the auth client.
"""
import json
from unittest.mock import MagicMock

import pytest

from pkg.taskboard.auth import (
    DEMO_USER,
    SESSION_KEY,
    STATE_KEY,
    AuthClient,
    AuthError,
    SessionManager,
    SessionState,
)
from pkg.taskboard.store import MutationRejected, StoreUnavailable

SIGN_IN_RESPONSE = {
    "access_token": "jwt-123",
    "user": {"id": "u1", "email": "ana@example.com", "created_at": "2026-01-01T00:00:00Z"},
}


@pytest.fixture
def client():
    return MagicMock(spec=AuthClient)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SessionManager
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestSessionManager:

    def test_starts_anonymous_without_auto_login(self, cache, client):
        sessions = SessionManager(cache, client)
        assert sessions.state == SessionState.ANONYMOUS
        assert sessions.get_current_user() is None
        assert sessions.access_token() is None

    def test_sign_in_authenticates_and_persists(self, cache, client):
        client.sign_in.return_value = SIGN_IN_RESPONSE
        sessions = SessionManager(cache, client)
        user = sessions.sign_in("ana@example.com", "secret")
        assert user.id == "u1"
        assert sessions.state == SessionState.AUTHENTICATED
        assert sessions.access_token() == "jwt-123"
        assert cache.get_state(STATE_KEY) == "authenticated"
        assert json.loads(cache.get_state(SESSION_KEY))["access_token"] == "jwt-123"

    def test_session_survives_restart(self, cache, client):
        client.sign_in.return_value = SIGN_IN_RESPONSE
        SessionManager(cache, client).sign_in("ana@example.com", "secret")
        restored = SessionManager(cache, client)
        assert restored.state == SessionState.AUTHENTICATED
        assert restored.get_current_user().email == "ana@example.com"

    def test_failed_sign_in_returns_to_anonymous(self, cache, client):
        client.sign_in.side_effect = AuthError("Invalid login credentials")
        sessions = SessionManager(cache, client)
        with pytest.raises(AuthError, match="Invalid login"):
            sessions.sign_in("ana@example.com", "wrong")
        assert sessions.state == SessionState.ANONYMOUS

    def test_malformed_response_is_auth_error(self, cache, client):
        client.sign_in.return_value = {"access_token": "x"}
        sessions = SessionManager(cache, client)
        with pytest.raises(AuthError, match="Malformed"):
            sessions.sign_in("ana@example.com", "secret")

    def test_transitions_are_announced(self, cache, client):
        client.sign_in.return_value = SIGN_IN_RESPONSE
        sessions = SessionManager(cache, client)
        seen = []
        sessions.subscribe(lambda state, user: seen.append((state, user.id if user else None)))
        sessions.sign_in("ana@example.com", "secret")
        sessions.sign_out()
        assert seen == [
            (SessionState.AUTHENTICATING, None),
            (SessionState.AUTHENTICATED, "u1"),
            (SessionState.SIGNED_OUT, None),
        ]

    def test_sign_out_clears_session(self, cache, client):
        client.sign_in.return_value = SIGN_IN_RESPONSE
        sessions = SessionManager(cache, client)
        sessions.sign_in("ana@example.com", "secret")
        sessions.sign_out()
        client.sign_out.assert_called_once()
        assert sessions.state == SessionState.SIGNED_OUT
        assert cache.get_state(SESSION_KEY) is None
        assert SessionManager(cache, client).state == SessionState.SIGNED_OUT

    def test_sign_out_survives_remote_failure(self, cache, client):
        client.sign_in.return_value = SIGN_IN_RESPONSE
        client.sign_out.side_effect = AuthError("offline")
        sessions = SessionManager(cache, client)
        sessions.sign_in("ana@example.com", "secret")
        sessions.sign_out()
        assert sessions.state == SessionState.SIGNED_OUT

    def test_sign_up_requiring_confirmation_stays_anonymous(self, cache, client):
        client.sign_up.return_value = {"id": "u2", "email": "new@example.com"}
        sessions = SessionManager(cache, client)
        user = sessions.sign_up("new@example.com", "secret")
        assert user.email == "new@example.com"
        assert sessions.state == SessionState.ANONYMOUS

    def test_sign_up_with_session_authenticates(self, cache, client):
        client.sign_up.return_value = SIGN_IN_RESPONSE
        sessions = SessionManager(cache, client)
        sessions.sign_up("ana@example.com", "secret")
        assert sessions.state == SessionState.AUTHENTICATED

    def test_interrupted_sign_in_restores_as_anonymous(self, cache, client):
        cache.set_state(STATE_KEY, "authenticating")
        assert SessionManager(cache, client).state == SessionState.ANONYMOUS

    def test_no_backend_cannot_sign_in(self, cache):
        sessions = SessionManager(cache, None)
        with pytest.raises(AuthError, match="No auth backend"):
            sessions.sign_in("ana@example.com", "secret")


class TestDemoMode:

    def test_demo_user_without_backend(self, cache):
        sessions = SessionManager(cache, None, demo_mode=True)
        assert sessions.state == SessionState.AUTHENTICATED
        assert sessions.get_current_user() == DEMO_USER

    def test_demo_mode_ignored_with_backend(self, cache, client):
        sessions = SessionManager(cache, client, demo_mode=True)
        assert not sessions.demo_mode
        assert sessions.get_current_user() is None

    def test_demo_sign_out_sticks(self, cache):
        SessionManager(cache, None, demo_mode=True).sign_out()
        sessions = SessionManager(cache, None, demo_mode=True)
        assert sessions.state == SessionState.SIGNED_OUT
        assert sessions.get_current_user() is None
        assert sessions.sign_in("", "") == DEMO_USER
        assert sessions.state == SessionState.AUTHENTICATED


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# AuthClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAuthClient:

    def test_password_grant(self):
        rest = MagicMock()
        rest.request.return_value = SIGN_IN_RESPONSE
        assert AuthClient(rest).sign_in("a@b.c", "pw") == SIGN_IN_RESPONSE
        args, kwargs = rest.request.call_args
        assert args == ("POST", "/auth/v1/token")
        assert kwargs["params"] == {"grant_type": "password"}
        assert kwargs["json"] == {"email": "a@b.c", "password": "pw"}

    def test_rejection_becomes_auth_error(self):
        rest = MagicMock()
        rest.request.side_effect = MutationRejected("Invalid login credentials", status_code=400)
        with pytest.raises(AuthError, match="Invalid login credentials"):
            AuthClient(rest).sign_in("a@b.c", "bad")

    def test_unavailable_becomes_auth_error(self):
        rest = MagicMock()
        rest.request.side_effect = StoreUnavailable("timed out")
        with pytest.raises(AuthError, match="unavailable"):
            AuthClient(rest).get_user()
