# tests/test_auth_client.py

import json

import httpx
import pytest

from app.client.auth_client import SIGNED_IN, SIGNED_OUT, USER_UPDATED, HttpAuthService, readable_message
from app.errors import AuthError

USER = {"id": "u1", "email": "ana@example.com"}


class FakeAuthApi:
    """Routes /auth requests to canned responses keyed by (method, path)."""

    def __init__(self) -> None:
        self.responses = {
            ("POST", "/auth/sign-in"): (200, {"token": "tok-1", "user": USER}),
            ("POST", "/auth/sign-up"): (201, {"token": "tok-1", "user": USER}),
            ("POST", "/auth/sign-out"): (200, {"success": True, "message": "Signed out"}),
            ("GET", "/auth/me"): (200, USER),
            ("PUT", "/auth/password"): (200, USER),
            ("POST", "/auth/password-reset"): (200, {"success": True, "message": "Recovery message sent"}),
            ("POST", "/auth/password-reset/confirm"): (200, {"token": "tok-2", "user": USER}),
        }
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses[(request.method, request.url.path)]
        return httpx.Response(status, json=body)


@pytest.fixture()
def auth_api() -> FakeAuthApi:
    return FakeAuthApi()


@pytest.fixture()
async def client(auth_api):
    async with httpx.AsyncClient(base_url="http://api", transport=httpx.MockTransport(auth_api)) as http:
        yield http


async def test_login_starts_session_and_notifies(client) -> None:
    auth = HttpAuthService(client)
    events = []
    auth.on_auth_state_change(lambda event, session: events.append((event, session)))

    result = await auth.login("ana@example.com", "secret123")

    assert result.user.email == "ana@example.com"
    assert result.session.access_token == "tok-1"
    assert auth.access_token == "tok-1"
    assert [event for event, _ in events] == [SIGNED_IN]


async def test_login_failure_is_readable(auth_api, client) -> None:
    auth_api.responses[("POST", "/auth/sign-in")] = (401, {"error": "Authentication failed", "message": "Invalid email or password"})
    auth = HttpAuthService(client)

    with pytest.raises(AuthError) as excinfo:
        await auth.login("ana@example.com", "nope")

    assert excinfo.value.message == "Invalid email or password"
    assert auth.access_token is None


async def test_duplicate_signup_is_readable(auth_api, client) -> None:
    auth_api.responses[("POST", "/auth/sign-up")] = (
        400, {"error": "Validation failed", "message": "User with this email already exists", "field": "email"}
    )

    with pytest.raises(AuthError) as excinfo:
        await HttpAuthService(client).signup("ana@example.com", "secret123")

    assert excinfo.value.message == "This email address is already registered"
    assert excinfo.value.field == "email"


async def test_signup_without_token_requires_confirmation(auth_api, client) -> None:
    auth_api.responses[("POST", "/auth/sign-up")] = (201, {"user": USER})

    result = await HttpAuthService(client).signup("ana@example.com", "secret123")

    assert result.requires_email_confirmation


async def test_logout_always_drops_token(auth_api, client) -> None:
    auth_api.responses[("POST", "/auth/sign-out")] = (500, {"error": "Internal server error"})
    auth = HttpAuthService(client)
    events = []
    auth.on_auth_state_change(lambda event, session: events.append(event))
    await auth.login("ana@example.com", "secret123")

    await auth.logout()

    assert auth.access_token is None
    assert events == [SIGNED_IN, SIGNED_OUT]
    assert auth_api.requests[-1].headers["Authorization"] == "Bearer tok-1"


async def test_current_user_from_stored_token(auth_api, client) -> None:
    auth = HttpAuthService(client, access_token="stored")
    events = []
    auth.on_auth_state_change(lambda event, session: events.append(event))

    user = await auth.get_current_user()

    assert user.id == "u1"
    assert events == [SIGNED_IN]
    assert auth_api.requests[0].headers["Authorization"] == "Bearer stored"


async def test_current_user_with_rejected_token(auth_api, client) -> None:
    auth_api.responses[("GET", "/auth/me")] = (401, {"error": "Authentication failed", "message": "Token has expired"})
    auth = HttpAuthService(client, access_token="expired")

    assert await auth.get_current_user() is None
    assert auth.access_token is None


async def test_current_user_without_token_makes_no_request(auth_api, client) -> None:
    assert await HttpAuthService(client).get_current_user() is None
    assert auth_api.requests == []


async def test_update_password(auth_api, client) -> None:
    auth = HttpAuthService(client)
    events = []
    subscription = auth.on_auth_state_change(lambda event, session: events.append(event))
    await auth.login("ana@example.com", "secret123")

    await auth.update_password("brand-new")
    subscription.unsubscribe()
    await auth.logout()

    assert json.loads(auth_api.requests[1].content) == {"password": "brand-new"}
    assert events == [SIGNED_IN, USER_UPDATED]


async def test_update_password_requires_session(client) -> None:
    with pytest.raises(AuthError):
        await HttpAuthService(client).update_password("brand-new")


async def test_unreachable_service() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    async with httpx.AsyncClient(base_url="http://api", transport=httpx.MockTransport(refuse)) as http:
        with pytest.raises(AuthError) as excinfo:
            await HttpAuthService(http).login("ana@example.com", "secret123")

    assert "unreachable" in excinfo.value.message


def test_readable_message() -> None:
    assert readable_message("Email not confirmed") == "Please confirm your email before signing in"
    assert readable_message("Something else") == "Something else"


async def test_reset_password_sends_email_without_token(auth_api, client) -> None:
    auth = HttpAuthService(client)

    message = await auth.reset_password("ana@example.com")

    request = auth_api.requests[0]
    assert message == "Recovery message sent"
    assert json.loads(request.content) == {"email": "ana@example.com"}
    assert "Authorization" not in request.headers
    assert auth.access_token is None


async def test_confirm_password_reset_signs_in(auth_api, client) -> None:
    auth = HttpAuthService(client)
    events = []
    auth.on_auth_state_change(lambda event, session: events.append(event))

    result = await auth.confirm_password_reset("reset-token", "recovered")

    assert json.loads(auth_api.requests[0].content) == {"token": "reset-token", "password": "recovered"}
    assert result.user.email == "ana@example.com"
    assert auth.access_token == "tok-2"
    assert events == [SIGNED_IN]


async def test_used_reset_token_is_readable(auth_api, client) -> None:
    auth_api.responses[("POST", "/auth/password-reset/confirm")] = (
        401, {"error": "Authentication failed", "message": "Reset token is no longer valid"}
    )

    with pytest.raises(AuthError) as excinfo:
        await HttpAuthService(client).confirm_password_reset("used", "recovered")

    assert excinfo.value.message == "This recovery link has expired or was already used"
