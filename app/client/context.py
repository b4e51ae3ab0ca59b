"""
Application context.

Builds and owns the client stack: authentication, Gateway, Subscriber,
Session Core and Task Synchronization Core. Identity changes announced by
the Session Core drive the Sync Core through one transition table.
"""

import logging
from typing import Dict, Optional, Tuple

import httpx

from app.client.auth_client import HttpAuthService
from app.client.gateway import TaskStoreGateway
from app.client.models import AuthUser
from app.client.session import SessionCore
from app.client.subscriber import ChangeFeedSubscriber
from app.client.sync import TaskSyncCore
from app.config import API_BASE_URL, FEED_REFRESH_ON_RECONNECT
from app.errors import TaskTrackerError

logger = logging.getLogger(__name__)

RESET = "reset"
LOAD = "load"

# (had a user, has a user) -> Sync Core actions, in order.
# Session Core only reports real identity changes, so (True, True) is a switch of user.
TRANSITIONS: Dict[Tuple[bool, bool], Tuple[str, ...]] = {
    (False, True): (LOAD,),
    (True, False): (RESET,),
    (True, True): (RESET, LOAD),
}


def websocket_url(base_url: str) -> str:
    """Map an http(s) API URL onto the matching ws(s) URL."""
    url = httpx.URL(base_url)
    return str(url.copy_with(scheme="wss" if url.scheme == "https" else "ws")).rstrip("/")


class AppContext:
    """Owner of both cores and the wiring between them."""

    def __init__(
        self,
        auth: HttpAuthService,
        gateway: TaskStoreGateway,
        subscriber: Optional[ChangeFeedSubscriber] = None,
        client: Optional[httpx.AsyncClient] = None,
        refresh_on_reconnect: bool = FEED_REFRESH_ON_RECONNECT,
    ):
        self.auth = auth
        self.gateway = gateway
        self.subscriber = subscriber
        self.sync = TaskSyncCore(gateway, subscriber, refresh_on_reconnect=refresh_on_reconnect)
        self.session = SessionCore(auth, on_sign_out=self.sync.reset)
        self._client = client

        if subscriber is not None:
            subscriber.on_error = self.sync.feed_failed
        self._remove_listener = self.session.on_user_change(self._on_user_change)

    @classmethod
    def connect(cls, base_url: str = API_BASE_URL, access_token: Optional[str] = None) -> "AppContext":
        """Build the HTTP and websocket stack against a running API."""
        client = httpx.AsyncClient(base_url=base_url)
        auth = HttpAuthService(client, access_token=access_token)

        def token_provider() -> Optional[str]:
            return auth.access_token

        gateway = TaskStoreGateway(client, token_provider)
        subscriber = ChangeFeedSubscriber(websocket_url(base_url), token_provider)
        return cls(auth, gateway, subscriber, client=client)

    async def start(self):
        """Restore any existing session; a restored user triggers the first load."""
        await self.session.initialize()

    async def aclose(self):
        self._remove_listener()
        self.sync.reset()
        await self.session.close()
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _on_user_change(self, previous: Optional[AuthUser], current: Optional[AuthUser]):
        actions = TRANSITIONS.get((previous is not None, current is not None), ())
        for action in actions:
            if action == RESET:
                self.sync.reset()
            elif action == LOAD:
                await self._load(current)

    async def _load(self, user: AuthUser):
        try:
            await self.sync.refresh()
        except TaskTrackerError as e:
            # Already recorded on the Sync Core for the presentation layer
            logger.warning(f"Initial task load for user {user.id} failed: {e}")

        try:
            self.sync.subscribe(user.id)
        except TaskTrackerError as e:
            logger.warning(f"Realtime updates unavailable for user {user.id}: {e}")
