"""
Session and role resolution.

A SessionProvider exposes the current session and a stream of auth state
changes. AuthState follows one provider: every change re-runs the has_role
check, and decide() turns the resulting state into a routing decision.
"""

import enum
import logging
import re
from typing import Awaitable, Callable, Optional

from swiftlogix.backend import AuthSession, AuthUser, Backend, RPC_HAS_ROLE
from swiftlogix.errors import BackendError, ValidationError

logger = logging.getLogger(__name__)


ADMIN_ROLE = "admin"
MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

AuthListener = Callable[[str, Optional[AuthSession]], Awaitable[None]]


class RouteDecision(str, enum.Enum):
    LOADING = "loading"
    SIGN_IN = "sign_in"
    HOME = "home"
    ALLOW = "allow"


# =============================================================================
# Credential validation
# =============================================================================

def validate_credentials(email: str, password: str, confirm_password: Optional[str] = None) -> None:
    if not EMAIL_PATTERN.match(email or ""):
        raise ValidationError("Please enter a valid email address")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Passwords do not match")


def friendly_auth_error(message: str) -> str:
    if "Invalid login credentials" in message:
        return "Invalid email or password"
    if "already registered" in message:
        return "An account with this email already exists"
    return message


# =============================================================================
# Session providers
# =============================================================================

class SessionProvider:
    """Current session plus a change stream (SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED)."""

    def __init__(self):
        self._listeners: list[AuthListener] = []

    async def get_session(self) -> Optional[AuthSession]:
        raise NotImplementedError

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns the function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, event: str, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            await listener(event, session)


class TokenSessionProvider(SessionProvider):
    """Session carried by an access token (bearer header or cookie)."""

    def __init__(self, backend: Backend, access_token: Optional[str] = None):
        super().__init__()
        self._backend = backend
        self.access_token = access_token

    async def get_session(self) -> Optional[AuthSession]:
        if not self.access_token:
            return None
        user = await self._backend.get_user(self.access_token)
        if user is None:
            return None
        return AuthSession(access_token=self.access_token, user=user)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        validate_credentials(email, password)
        session = await self._backend.sign_in(email, password)
        self.access_token = session.access_token
        logger.info(f"User signed in: {session.user.id}")
        await self._notify("SIGNED_IN", session)
        return session

    async def sign_up(self, email: str, password: str, confirm_password: str) -> AuthSession:
        validate_credentials(email, password, confirm_password)
        session = await self._backend.sign_up(email, password)
        self.access_token = session.access_token
        logger.info(f"User signed up: {session.user.id}")
        await self._notify("SIGNED_IN", session)
        return session

    async def sign_out(self) -> None:
        if self.access_token:
            await self._backend.sign_out(self.access_token)
        self.access_token = None
        await self._notify("SIGNED_OUT", None)


# =============================================================================
# Auth state
# =============================================================================

class AuthState:
    """
    User and admin flag for one session provider.

    While a session or role check is outstanding, is_loading is True and
    decide() answers LOADING rather than guessing.
    """

    def __init__(self, provider: SessionProvider, backend: Backend, role: str = ADMIN_ROLE):
        self._provider = provider
        self._backend = backend
        self._role = role
        self.user: Optional[AuthUser] = None
        self.is_admin = False
        self.is_loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> "AuthState":
        self._unsubscribe = self._provider.on_auth_state_change(self._on_change)
        await self._apply(await self._provider.get_session())
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_change(self, event: str, session: Optional[AuthSession]) -> None:
        logger.debug(f"Auth state change: {event}")
        await self._apply(session)

    async def _apply(self, session: Optional[AuthSession]) -> None:
        self.user = session.user if session else None
        if self.user is None:
            self.is_admin = False
            self.is_loading = False
            return

        self.is_loading = True
        self.is_admin = await self._check_role(self.user.id)
        self.is_loading = False

    async def _check_role(self, user_id: str) -> bool:
        try:
            return bool(await self._backend.rpc(RPC_HAS_ROLE, {"_user_id": user_id, "_role": self._role}))
        except BackendError as e:
            logger.warning(f"Role check failed for {user_id}: {e}")
            return False

    def decide(self, require_admin: bool = False) -> RouteDecision:
        if self.is_loading:
            return RouteDecision.LOADING
        if self.user is None:
            return RouteDecision.SIGN_IN
        if require_admin and not self.is_admin:
            return RouteDecision.HOME
        return RouteDecision.ALLOW

    async def __aenter__(self) -> "AuthState":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
