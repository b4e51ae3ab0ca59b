"""
Session Core.

Holds the identity of the signed-in user and announces identity changes.
It never touches the task collection itself: whoever owns both cores
listens through ``on_user_change`` and drives synchronization from there.
The one exception is the sign-out hook, which runs before the user is
cleared so a following login never sees the previous user's tasks.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from app.client.auth_client import AuthStateSubscription, HttpAuthService
from app.client.models import AuthResult, AuthSession, AuthUser
from app.errors import TaskTrackerError

logger = logging.getLogger(__name__)

# listener(previous, current); may return an awaitable
UserListener = Callable[[Optional[AuthUser], Optional[AuthUser]], Any]

EMAIL_CONFIRMATION_MESSAGE = "Please check your email to activate your account"


def _user_id(user: Optional[AuthUser]) -> Optional[str]:
    return user.id if user is not None else None


class SessionCore:
    """Current-user identity and its transitions."""

    def __init__(self, auth: HttpAuthService, on_sign_out: Optional[Callable[[], Any]] = None):
        """
        Args:
            auth: Authentication Service
            on_sign_out: Run by ``logout`` before the user is cleared
        """
        self._auth = auth
        self._on_sign_out = on_sign_out
        self._listeners: List[UserListener] = []
        self._auth_subscription: Optional[AuthStateSubscription] = None
        self._notifications = set()
        # Local login/signup/logout calls in flight; they set the user themselves
        self._busy = 0

        self.user: Optional[AuthUser] = None
        self.loading = False
        self.error: Optional[str] = None
        self.initialized = False

    def on_user_change(self, listener: UserListener) -> Callable[[], None]:
        """Register ``listener(previous, current)``; returns its remover."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def initialize(self):
        """Restore an existing session and start following auth state changes. Idempotent."""
        if self.initialized:
            return
        self.initialized = True

        self.loading = True
        self.error = None
        try:
            user = await self._auth.get_current_user()
        except TaskTrackerError as e:
            logger.error(f"Failed to restore session: {e}")
            self.error = e.message
            user = None
        finally:
            self.loading = False

        self._auth_subscription = self._auth.on_auth_state_change(self._on_auth_event)
        await self._set_user(user)

    async def login(self, email: str, password: str) -> AuthUser:
        result = await self._run(self._auth.login(email, password))
        await self._set_user(result.user)
        return result.user

    async def signup(self, email: str, password: str) -> AuthResult:
        """
        Register a new account.

        When the service answers without a session the user stays signed
        out and ``result.requires_email_confirmation`` is true.
        """
        result = await self._run(self._auth.signup(email, password))
        if result.requires_email_confirmation:
            self.error = EMAIL_CONFIRMATION_MESSAGE
            return result

        await self._set_user(result.user)
        return result

    async def logout(self):
        await self._run(self._auth.logout())

        if self._on_sign_out is not None:
            outcome = self._on_sign_out()
            if inspect.isawaitable(outcome):
                await outcome
        await self._set_user(None)

    async def update_password(self, password: str) -> AuthUser:
        user = await self._run(self._auth.update_password(password))
        await self._set_user(user)
        return user

    async def reset_password(self, email: str) -> str:
        """Request a recovery message. The current user, if any, is left alone."""
        return await self._run(self._auth.reset_password(email))

    async def confirm_password_reset(self, token: str, password: str) -> AuthUser:
        result = await self._run(self._auth.confirm_password_reset(token, password))
        await self._set_user(result.user)
        return result.user

    def clear_error(self):
        self.error = None

    async def close(self):
        """Stop following auth state changes and wait for pending notifications."""
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None
        if self._notifications:
            await asyncio.gather(*self._notifications, return_exceptions=True)

    async def _run(self, call):
        self._busy += 1
        self.loading = True
        self.error = None
        try:
            return await call
        except TaskTrackerError as e:
            self.error = e.message
            raise
        finally:
            self._busy -= 1
            self.loading = self._busy > 0

    def _on_auth_event(self, event: str, session: Optional[AuthSession]):
        if self._busy:
            return

        user = session.user if session is not None else None
        logger.info(f"Auth state changed: {event}")
        notification = asyncio.get_running_loop().create_task(self._set_user(user))
        self._notifications.add(notification)
        notification.add_done_callback(self._notifications.discard)

    async def _set_user(self, user: Optional[AuthUser]):
        previous = self.user
        self.user = user
        if _user_id(previous) == _user_id(user):
            return

        logger.info(f"User changed from {_user_id(previous)} to {_user_id(user)}")
        for listener in list(self._listeners):
            try:
                outcome = listener(previous, user)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("User change listener failed")
