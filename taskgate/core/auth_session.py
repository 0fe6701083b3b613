"""Sign-in state machine and token refresh coordination.

State per session::

    ANONYMOUS -> CODE_SENT -> AUTHENTICATED -> (TOKEN_EXPIRING) -> REFRESHED | LOGGED_OUT

The phone number a code was sent to is held in memory only; tokens are
persisted through the CredentialStore.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from taskgate.domain.models.records import Session, User, utc_now
from taskgate.domain.models.wire import VerifyCodeResponse
from taskgate.infrastructure.storage.credential_store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SKEW_SECONDS = 60.0


class AuthState(str, Enum):
    ANONYMOUS = "anonymous"
    CODE_SENT = "code_sent"
    AUTHENTICATED = "authenticated"
    TOKEN_EXPIRING = "token_expiring"
    REFRESHED = "refreshed"
    LOGGED_OUT = "logged_out"


@dataclass
class AuthStatus:
    """Snapshot returned by ``Gateway.get_auth_status``."""
    state: AuthState
    mode: str
    user: Optional[User] = None
    expires_at: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class AuthSession:
    """Tracks the sign-in state and writes sessions to the CredentialStore."""

    def __init__(
        self,
        credentials: CredentialStore,
        expiry_skew: float = DEFAULT_EXPIRY_SKEW_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.credentials = credentials
        self.expiry_skew = expiry_skew
        self._clock = clock
        self._state = AuthState.ANONYMOUS
        self.pending_phone: Optional[str] = None

    def mark_code_sent(self, phone: str) -> None:
        self.pending_phone = phone
        self._state = AuthState.CODE_SENT
        logger.debug("Auth state -> CODE_SENT")

    def awaiting_code_for(self, phone: str) -> bool:
        return self.pending_phone is not None and self.pending_phone == phone

    def _session_from(self, response: VerifyCodeResponse, user: User) -> Session:
        return Session(
            user=user,
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=self._clock() + timedelta(seconds=response.expires_in_seconds),
        )

    async def complete_sign_in(self, phone: str, response: VerifyCodeResponse) -> Session:
        """Persists the tokens of a successful verification."""
        user = response.user or User(id="", phone=phone, name="")
        session = self._session_from(response, user)
        await self.credentials.save(session)
        self.pending_phone = None
        self._state = AuthState.AUTHENTICATED
        logger.info(f"Signed in as user {user.id or phone}")
        return session

    async def apply_refresh(self, response: VerifyCodeResponse) -> Session:
        """Stores a refreshed token pair, keeping the known user."""
        current = await self.credentials.load()
        user = response.user or (current.user if current else User(id="", phone="", name=""))
        session = self._session_from(response, user)
        await self.credentials.save(session)
        self._state = AuthState.REFRESHED
        logger.info("Access token refreshed.")
        return session

    async def sign_out(self, state: AuthState = AuthState.ANONYMOUS) -> None:
        """Clears stored credentials. Never fails because of the backend."""
        await self.credentials.clear()
        self.pending_phone = None
        self._state = state
        logger.debug(f"Auth state -> {state.name}")

    async def current(self) -> AuthState:
        """Current state, derived from the stored session when one exists."""
        session = await self.credentials.load()
        if session is None:
            if self.pending_phone is not None:
                return AuthState.CODE_SENT
            if self._state == AuthState.LOGGED_OUT:
                return AuthState.LOGGED_OUT
            return AuthState.ANONYMOUS
        if session.expires_within(self.expiry_skew, self._clock()):
            return AuthState.TOKEN_EXPIRING
        if self._state == AuthState.REFRESHED:
            return AuthState.REFRESHED
        return AuthState.AUTHENTICATED


class TokenRefreshCoordinator:
    """Ensures at most one token refresh is in flight.

    The first caller starts the refresh as an ``asyncio.Task``; callers that
    arrive while it runs await the same task and share its result or error.
    """

    def __init__(self):
        self._in_flight: Optional["asyncio.Future[Any]"] = None
        self.refresh_count = 0

    async def run(self, refresh: Callable[[], Awaitable[Any]]) -> Any:
        task = self._in_flight
        if task is None:
            task = asyncio.ensure_future(refresh())
            self._in_flight = task
            self.refresh_count += 1
            task.add_done_callback(self._finished)
        else:
            logger.debug("Joining the token refresh already in flight.")
        # One caller being cancelled must not cancel the shared refresh
        return await asyncio.shield(task)

    def _finished(self, task: "asyncio.Future[Any]") -> None:
        if self._in_flight is task:
            self._in_flight = None
        if not task.cancelled():
            # Marks the exception retrieved; awaiting callers re-raise it
            task.exception()
