"""
Authentication: hosted auth endpoints plus a locally persisted session.

Session states:
  anonymous       no user; the board shows the sign-in form
  authenticating  sign-in / sign-up in flight
  authenticated   user and access token known
  signed_out      user explicitly signed out (distinct from never signed in)

The session lives in exactly one place: the local cache's system_state table.
Nothing signs in implicitly. A demo user exists only when demo mode is
enabled and no backend is configured.
"""
import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .events import EventBridge
from .remote import RestClient
from .store import LocalTaskCache, MutationRejected, StoreUnavailable

logger = logging.getLogger(__name__)

STATE_KEY = "auth.state"
SESSION_KEY = "auth.session"


class AuthError(Exception):
    """Sign-in / sign-up failed, or auth is not available."""
    pass


class SessionState(Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    SIGNED_OUT = "signed_out"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "SessionState":
        try:
            return cls(value)
        except ValueError:
            return cls.ANONYMOUS


@dataclass(frozen=True)
class User:
    id: str
    email: str
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            email=data.get("email") or "",
            created_at=data.get("created_at"),
        )


DEMO_USER = User(id="demo-user", email="demo@example.com")


class AuthClient:
    """GoTrue-style password auth over the shared REST client."""

    def __init__(self, client: RestClient):
        self.client = client

    def _call(self, method: str, path: str, **kwargs) -> Any:
        try:
            return self.client.request(method, path, write=True, **kwargs)
        except MutationRejected as e:
            raise AuthError(str(e)) from e
        except StoreUnavailable as e:
            raise AuthError(f"Auth service unavailable: {e}") from e

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        return self._call(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        ) or {}

    def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        return self._call("POST", "/auth/v1/signup", json={"email": email, "password": password}) or {}

    def get_user(self) -> Dict[str, Any]:
        return self._call("GET", "/auth/v1/user") or {}

    def sign_out(self) -> None:
        self._call("POST", "/auth/v1/logout")


class SessionManager:
    """Owns the session state machine and notifies subscribers of changes."""

    def __init__(
        self,
        cache: LocalTaskCache,
        client: Optional[AuthClient] = None,
        demo_mode: bool = False,
        events: Optional[EventBridge] = None,
    ):
        self.cache = cache
        self.client = client
        self.demo_mode = demo_mode and client is None
        self.events = events or EventBridge()
        self._lock = threading.RLock()
        self._user: Optional[User] = None
        self._access_token: Optional[str] = None
        self._state = SessionState.ANONYMOUS
        self._restore()

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    def access_token(self) -> Optional[str]:
        """Bearer token for store requests (None outside an authenticated session)."""
        return self._access_token if self._state == SessionState.AUTHENTICATED else None

    def get_current_user(self) -> Optional[User]:
        if self._state != SessionState.AUTHENTICATED:
            return None
        return DEMO_USER if self.demo_mode else self._user

    def subscribe(self, callback) -> None:
        """callback(state=SessionState, user=User|None) on every transition."""
        self.events.subscribe("session_changed", callback)

    def to_dict(self) -> Dict[str, Any]:
        user = self.get_current_user()
        return {
            "state": self._state.value,
            "user": user.to_dict() if user else None,
            "demo": self.demo_mode,
        }

    # ── Transitions ──────────────────────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> User:
        if self.demo_mode:
            self._transition(SessionState.AUTHENTICATED)
            return DEMO_USER
        client = self._require_client()
        self._transition(SessionState.AUTHENTICATING)
        try:
            data = client.sign_in(email, password)
            user = User.from_dict(data["user"])
        except (AuthError, KeyError, TypeError) as e:
            logger.warning(f"Sign-in failed for {email}: {e}")
            self._transition(SessionState.ANONYMOUS)
            if isinstance(e, AuthError):
                raise
            raise AuthError("Malformed sign-in response") from e
        self._authenticate(user, data.get("access_token"))
        logger.info(f"Signed in as {user.email}")
        return user

    def sign_up(self, email: str, password: str) -> User:
        """
        Register a user. If the backend requires email confirmation no session
        is returned and the state goes back to anonymous.
        """
        client = self._require_client()
        self._transition(SessionState.AUTHENTICATING)
        try:
            data = client.sign_up(email, password)
            user = User.from_dict(data.get("user") or data)
        except (AuthError, KeyError, TypeError) as e:
            logger.warning(f"Sign-up failed for {email}: {e}")
            self._transition(SessionState.ANONYMOUS)
            if isinstance(e, AuthError):
                raise
            raise AuthError("Malformed sign-up response") from e
        token = data.get("access_token")
        if token:
            self._authenticate(user, token)
        else:
            logger.info(f"Signed up {user.email}, awaiting email confirmation")
            self._transition(SessionState.ANONYMOUS)
        return user

    def sign_out(self) -> None:
        with self._lock:
            if self.client is not None and self._access_token:
                try:
                    self.client.sign_out()
                except AuthError as e:
                    # Local sign-out still happens; the token just expires server-side
                    logger.warning(f"Remote sign-out failed: {e}")
            self._user = None
            self._access_token = None
            self.cache.clear_state(SESSION_KEY)
            self._transition(SessionState.SIGNED_OUT)
        logger.info("Signed out")

    # ── Internals ────────────────────────────────────────────────────────────

    def _require_client(self) -> AuthClient:
        if self.client is None:
            raise AuthError("No auth backend is configured")
        return self.client

    def _authenticate(self, user: User, token: Optional[str]) -> None:
        with self._lock:
            self._user = user
            self._access_token = token
            self.cache.set_state(
                SESSION_KEY,
                json.dumps({"user": user.to_dict(), "access_token": token}),
            )
            self._transition(SessionState.AUTHENTICATED)

    def _transition(self, state: SessionState) -> None:
        with self._lock:
            previous = self._state
            self._state = state
            self.cache.set_state(STATE_KEY, state.value)
        if previous != state:
            logger.debug(f"Session {previous.value} -> {state.value}")
            self.events.emit("session_changed", state=state, user=self.get_current_user())

    def _restore(self) -> None:
        """Reload a persisted session. An interrupted sign-in restarts as anonymous."""
        state = SessionState.from_str(self.cache.get_state(STATE_KEY))
        if state == SessionState.AUTHENTICATED:
            raw = self.cache.get_state(SESSION_KEY)
            try:
                saved = json.loads(raw) if raw else None
                self._user = User.from_dict(saved["user"]) if saved else None
                self._access_token = saved.get("access_token") if saved else None
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Discarding unreadable saved session: {e}")
                self._user = None
            if self._user is None:
                state = SessionState.ANONYMOUS
        elif state == SessionState.AUTHENTICATING:
            state = SessionState.ANONYMOUS
        if self.demo_mode and state != SessionState.SIGNED_OUT:
            state = SessionState.AUTHENTICATED
        self._state = state
        logger.debug(f"Session restored as {state.value}")
