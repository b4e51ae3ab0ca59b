"""
Change Feed Subscriber.

Opens one websocket subscription to the task change feed and turns each
message into a ChangeEvent for the subscriber's callback. Reconnection is
left to the ``websockets`` reconnecting iterator; events missed while
disconnected are not replayed, so an ``on_reconnect`` hook is offered for
the caller to resynchronize.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException
from pydantic import ValidationError as PydanticValidationError

from app.client.models import ChangeEvent, ChangeKind, Task
from app.errors import SubscriptionError
from app.utils.logger import get_logger

logger = get_logger(__name__)

FEED_PATH = "/ws/tasks"

EventCallback = Callable[[ChangeEvent], None]
ReconnectCallback = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[SubscriptionError], None]


def _noop():
    return None


class ChangeFeedSubscriber:
    """Single-owner subscription to the task change feed."""

    def __init__(
        self,
        ws_url: str,
        token_provider: Callable[[], Optional[str]],
        connect: Callable[..., Any] = websockets.connect,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Args:
            ws_url: Base websocket URL of the API, e.g. ws://localhost:8000
            token_provider: Returns the current bearer token
            connect: Factory returning a reconnecting async iterator of connections
            on_error: Called when the feed fails in a way reconnecting cannot fix
        """
        self._ws_url = ws_url.rstrip("/")
        self._token_provider = token_provider
        self._connect = connect
        self.on_error = on_error
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None

    def subscribe(
        self,
        user_id: str,
        on_event: EventCallback,
        on_reconnect: Optional[ReconnectCallback] = None,
    ) -> Callable[[], None]:
        """
        Start delivering change events for the user's rows.

        Returns:
            An idempotent unsubscribe function. If a subscription is already
            active nothing is opened and a no-op function is returned.
        """
        if self._task is not None:
            logger.debug("Subscription already active; ignoring subscribe", user_id=user_id)
            return _noop

        token = self._token_provider()
        if not token:
            raise SubscriptionError("Cannot subscribe without an access token")

        url = f"{self._ws_url}{FEED_PATH}?{urlencode({'token': token})}"
        task = asyncio.get_running_loop().create_task(
            self._run(url, user_id, on_event, on_reconnect)
        )
        self._task = task
        logger.info("Subscribed to task changes", user_id=user_id)

        released = False

        def unsubscribe():
            nonlocal released
            if released:
                return
            released = True
            if self._task is task:
                self._task = None
            task.cancel()
            logger.info("Unsubscribed from task changes", user_id=user_id)

        return unsubscribe

    async def _run(
        self,
        url: str,
        user_id: str,
        on_event: EventCallback,
        on_reconnect: Optional[ReconnectCallback],
    ):
        log = logger.bind(user_id=user_id)
        connections = 0
        try:
            async for connection in self._connect(url):
                connections += 1
                if connections > 1:
                    log.info("Change feed reconnected", attempt=connections)
                    if on_reconnect is not None:
                        await self._notify_reconnect(on_reconnect)
                try:
                    async for raw in connection:
                        self.dispatch(raw, on_event)
                except ConnectionClosed as e:
                    log.warning("Change feed connection lost", reason=str(e))
        except (WebSocketException, OSError) as e:
            error = SubscriptionError(f"Change feed connection failed: {e}")
            log.error("Change feed stopped", reason=str(e))
            if self._task is asyncio.current_task():
                self._task = None
            if self.on_error is not None:
                self.on_error(error)

    @staticmethod
    async def _notify_reconnect(on_reconnect: ReconnectCallback):
        try:
            await on_reconnect()
        except Exception:
            logger.exception("Resynchronization after reconnect failed")

    @staticmethod
    def parse(raw: Any) -> Optional[ChangeEvent]:
        """
        Decode one feed message.

        Returns:
            The event, or None for control messages such as the greeting

        Raises:
            ValueError: If the message is not a well-formed change event
        """
        message = json.loads(raw)
        if not isinstance(message, dict):
            raise ValueError("feed message is not an object")
        if message.get("type") != "task_change":
            return None

        kind = ChangeKind(message.get("kind"))
        try:
            task = Task.model_validate(message.get("task"))
        except PydanticValidationError as e:
            raise ValueError(f"invalid task payload: {e}") from e
        return ChangeEvent(kind=kind, task=task)

    def dispatch(self, raw: Any, on_event: EventCallback):
        """Parse a message and hand it to the callback. Bad events are logged and dropped."""
        try:
            event = self.parse(raw)
        except (ValueError, TypeError) as e:
            logger.warning("Dropping malformed change event", reason=str(e))
            return

        if event is None:
            return

        try:
            on_event(event)
        except Exception:
            logger.exception("Change event handler failed", kind=event.kind.value, task_id=event.task.id)
