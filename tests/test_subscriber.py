# tests/test_subscriber.py

import asyncio
import json
from typing import List, Optional

import pytest

from app.client.models import ChangeEvent, ChangeKind
from app.client.subscriber import ChangeFeedSubscriber
from app.errors import SubscriptionError

ROW = {
    "id": "t1",
    "user_id": "u1",
    "title": "Buy milk",
    "description": "",
    "completed": False,
    "created_at": "2026-01-01T10:00:00+00:00",
    "updated_at": "2026-01-01T10:00:00+00:00",
}

GREETING = json.dumps({"type": "connection_established", "message": "hello"})


def change(kind: str, **task) -> str:
    return json.dumps({"type": "task_change", "kind": kind, "task": {**ROW, **task}})


class FakeConnection:
    def __init__(self, messages: List[str]) -> None:
        self.messages = messages

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for message in self.messages:
            yield message


class FakeFeed:
    """
    Stand-in for ``websockets.connect``.

    Yields one connection per message list, then either raises ``error``
    or stays open until the subscription is cancelled, counting cancellations.
    """

    def __init__(self, *connections: List[str], error: Optional[Exception] = None) -> None:
        self.connections = connections
        self.error = error
        self.urls: List[str] = []
        self.drained = asyncio.Event()
        self.closed = asyncio.Event()
        self.cancellations = 0

    def __call__(self, url: str):
        self.urls.append(url)
        return self._connect()

    async def _connect(self):
        for messages in self.connections:
            yield FakeConnection(messages)
        self.drained.set()
        if self.error is not None:
            raise self.error
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancellations += 1
            self.closed.set()
            raise


async def run_until_drained(feed: FakeFeed) -> None:
    await asyncio.wait_for(feed.drained.wait(), timeout=1)


async def test_subscribe_requires_token() -> None:
    subscriber = ChangeFeedSubscriber("ws://api", lambda: None, connect=FakeFeed())
    with pytest.raises(SubscriptionError):
        subscriber.subscribe("u1", lambda event: None)
    assert subscriber.active is False


async def test_events_are_delivered_and_control_messages_skipped() -> None:
    feed = FakeFeed([GREETING, change("insert"), change("update", title="Buy oat milk"), change("delete")])
    subscriber = ChangeFeedSubscriber("ws://api/", lambda: "tok en", connect=feed)
    events: List[ChangeEvent] = []

    unsubscribe = subscriber.subscribe("u1", events.append)
    await run_until_drained(feed)
    unsubscribe()

    assert [event.kind for event in events] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
    assert events[1].task.title == "Buy oat milk"
    assert feed.urls == ["ws://api/ws/tasks?token=tok+en"]


async def test_malformed_events_are_dropped() -> None:
    feed = FakeFeed([
        "not json",
        json.dumps(["a", "list"]),
        json.dumps({"type": "task_change", "kind": "upsert", "task": ROW}),
        json.dumps({"type": "task_change", "kind": "insert", "task": {"id": "t1"}}),
        change("insert"),
    ])
    subscriber = ChangeFeedSubscriber("ws://api", lambda: "token", connect=feed)
    events: List[ChangeEvent] = []

    unsubscribe = subscriber.subscribe("u1", events.append)
    await run_until_drained(feed)
    unsubscribe()

    assert len(events) == 1
    assert events[0].task.id == "t1"


async def test_failing_handler_does_not_stop_the_feed() -> None:
    feed = FakeFeed([change("insert"), change("update")])
    subscriber = ChangeFeedSubscriber("ws://api", lambda: "token", connect=feed)
    seen = []

    def handler(event: ChangeEvent) -> None:
        seen.append(event.kind)
        if event.kind is ChangeKind.INSERT:
            raise RuntimeError("presentation bug")

    unsubscribe = subscriber.subscribe("u1", handler)
    await run_until_drained(feed)
    unsubscribe()

    assert seen == [ChangeKind.INSERT, ChangeKind.UPDATE]


async def test_reconnect_hook_runs_after_each_reconnection_only() -> None:
    feed = FakeFeed([GREETING], [GREETING], [GREETING])
    subscriber = ChangeFeedSubscriber("ws://api", lambda: "token", connect=feed)
    reconnects = []

    async def on_reconnect() -> None:
        reconnects.append(len(reconnects) + 1)

    unsubscribe = subscriber.subscribe("u1", lambda event: None, on_reconnect=on_reconnect)
    await run_until_drained(feed)
    unsubscribe()

    assert reconnects == [1, 2]


async def test_single_active_subscription_and_idempotent_unsubscribe() -> None:
    feed = FakeFeed()
    subscriber = ChangeFeedSubscriber("ws://api", lambda: "token", connect=feed)

    unsubscribe = subscriber.subscribe("u1", lambda event: None)
    second = subscriber.subscribe("u1", lambda event: None)
    await run_until_drained(feed)

    assert subscriber.active
    assert len(feed.urls) == 1

    second()
    assert subscriber.active

    unsubscribe()
    unsubscribe()
    await asyncio.wait_for(feed.closed.wait(), timeout=1)

    assert subscriber.active is False
    assert feed.cancellations == 1


async def test_connection_failure_reports_subscription_error() -> None:
    failed = asyncio.Event()
    errors: List[SubscriptionError] = []

    def on_error(error: SubscriptionError) -> None:
        errors.append(error)
        failed.set()

    feed = FakeFeed(error=OSError("connection refused"))
    subscriber = ChangeFeedSubscriber("ws://api", lambda: "token", connect=feed, on_error=on_error)

    subscriber.subscribe("u1", lambda event: None)
    await asyncio.wait_for(failed.wait(), timeout=1)

    assert isinstance(errors[0], SubscriptionError)
    assert "connection refused" in errors[0].message
    assert subscriber.active is False
