"""
HTTP Authentication client.

Talks to the ``/auth`` endpoints of the API, keeps the current access token
and tells listeners when the user signs in, signs out or is updated.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from app.client.models import AuthResult, AuthSession, AuthUser
from app.errors import AuthError

logger = logging.getLogger(__name__)

AUTH_PATH = "/auth"

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
USER_UPDATED = "USER_UPDATED"

AuthStateCallback = Callable[[str, Optional[AuthSession]], None]

# Service messages -> what the user is shown
READABLE_MESSAGES = {
    "invalid email or password": "Invalid email or password",
    "already exists": "This email address is already registered",
    "not confirmed": "Please confirm your email before signing in",
    "no longer valid": "This recovery link has expired or was already used",
}


def readable_message(message: str) -> str:
    lowered = message.lower()
    for fragment, readable in READABLE_MESSAGES.items():
        if fragment in lowered:
            return readable
    return message


class AuthStateSubscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, listeners: List[AuthStateCallback], callback: AuthStateCallback):
        self._listeners = listeners
        self._callback = callback

    def unsubscribe(self):
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class HttpAuthService:
    """Authentication Service backed by the API's bearer-token endpoints."""

    def __init__(self, client: httpx.AsyncClient, access_token: Optional[str] = None):
        self._client = client
        self._session: Optional[AuthSession] = None
        self._pending_token = access_token
        self._listeners: List[AuthStateCallback] = []

    @property
    def access_token(self) -> Optional[str]:
        if self._session is not None:
            return self._session.access_token
        return self._pending_token

    async def signup(self, email: str, password: str) -> AuthResult:
        """Register and sign in. A result without session means the email must be confirmed."""
        data = await self._call("POST", "/sign-up", json={"email": email, "password": password})
        return self._start_session(data)

    async def login(self, email: str, password: str) -> AuthResult:
        data = await self._call("POST", "/sign-in", json={"email": email, "password": password})
        return self._start_session(data)

    async def logout(self):
        """Sign out. The local token is dropped even when the API cannot be reached."""
        token = self.access_token
        try:
            if token:
                await self._call("POST", "/sign-out", token=token)
        except AuthError as e:
            logger.warning(f"Sign-out request failed, discarding token anyway: {e}")
        finally:
            had_session = self._session is not None
            self._session = None
            self._pending_token = None
            if had_session:
                self._emit(SIGNED_OUT, None)

    async def get_current_user(self) -> Optional[AuthUser]:
        """The user owning the held token, or None when there is no valid token."""
        token = self.access_token
        if not token:
            return None

        try:
            data = await self._call("GET", "/me", token=token)
        except AuthError as e:
            logger.info(f"Stored token rejected: {e}")
            self._session = None
            self._pending_token = None
            return None

        user = AuthUser.model_validate(data)
        if self._session is None:
            self._session = AuthSession(access_token=token, user=user)
            self._pending_token = None
            self._emit(SIGNED_IN, self._session)
        return user

    async def update_password(self, password: str) -> AuthUser:
        token = self.access_token
        if not token:
            raise AuthError("Not authenticated")

        data = await self._call("PUT", "/password", json={"password": password}, token=token)
        user = AuthUser.model_validate(data)
        self._session = AuthSession(access_token=token, user=user)
        self._emit(USER_UPDATED, self._session)
        return user

    async def reset_password(self, email: str) -> str:
        """Ask for a recovery message for ``email``. Returns the service's acknowledgement."""
        data = await self._call("POST", "/password-reset", json={"email": email})
        return data.get("message", "")

    async def confirm_password_reset(self, token: str, password: str) -> AuthResult:
        """Set a new password with a reset token; the user is signed in afterwards."""
        data = await self._call("POST", "/password-reset/confirm", json={"token": token, "password": password})
        return self._start_session(data)

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthStateSubscription:
        """Call ``callback(event, session)`` on every sign-in, sign-out and user update."""
        self._listeners.append(callback)
        return AuthStateSubscription(self._listeners, callback)

    def _start_session(self, data: Dict[str, Any]) -> AuthResult:
        user = AuthUser.model_validate(data["user"])
        token = data.get("token")
        if not token:
            return AuthResult(user=user, session=None)

        self._session = AuthSession(access_token=token, user=user)
        self._pending_token = None
        self._emit(SIGNED_IN, self._session)
        return AuthResult(user=user, session=self._session)

    def _emit(self, event: str, session: Optional[AuthSession]):
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f"Auth state listener failed on {event}")

    async def _call(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = await self._client.request(method, f"{AUTH_PATH}{path}", json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{method} {AUTH_PATH}{path} failed: {e}")
            raise AuthError(f"Authentication service unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body

        if not isinstance(body, dict):
            body = {}
        message = readable_message(body.get("message") or response.reason_phrase)
        raise AuthError(message, field=body.get("field"))
