"""
Task Synchronization Core.

Owns the in-memory task collection of one signed-in user. Local mutations
go through the Gateway; remote changes arrive from the Change Feed
Subscriber. Both paths converge on the same merge and remove helpers, which
always check for presence first, so the collection never holds two tasks
with the same id no matter how replies and feed events interleave.

Statistics are kept by delta for local mutations and recomputed from the
collection after every feed event.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple, Union

from app.client.gateway import TaskStoreGateway
from app.client.models import (
    ChangeEvent, ChangeKind, SyncState, Task, TaskFilter, TaskPatch, TaskStats,
)
from app.client.subscriber import ChangeFeedSubscriber
from app.config import FEED_REFRESH_ON_RECONNECT
from app.errors import ValidationError

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class TaskSyncCore:
    """Single source of truth for the task collection and its statistics."""

    def __init__(
        self,
        gateway: TaskStoreGateway,
        subscriber: Optional[ChangeFeedSubscriber] = None,
        refresh_on_reconnect: bool = FEED_REFRESH_ON_RECONNECT,
    ):
        self._gateway = gateway
        self._subscriber = subscriber
        self._refresh_on_reconnect = refresh_on_reconnect

        self._tasks: List[Task] = []
        self._stats = TaskStats()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[ChangeListener] = []
        # Bumped by reset(); completions from an older generation are discarded
        self._generation = 0
        # Changes applied while a refresh is in flight: id -> (sequence, task or None if deleted)
        self._touched: Dict[str, Tuple[int, Optional[Task]]] = {}
        self._sequence = 0
        self._refreshing = 0

        self.state = SyncState.EMPTY
        self.error: Optional[str] = None

    # ------------------------------------------------------------------ reads

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks)

    @property
    def stats(self) -> TaskStats:
        return self._stats

    @property
    def loading(self) -> bool:
        return self.state is SyncState.LOADING

    @property
    def realtime_enabled(self) -> bool:
        return self._unsubscribe is not None

    def get(self, task_id: str) -> Optional[Task]:
        return next((task for task in self._tasks if task.id == task_id), None)

    def filter(self, predicate: Union[TaskFilter, str] = TaskFilter.ALL) -> List[Task]:
        """Tasks matching a completion filter: all, completed or pending."""
        try:
            predicate = TaskFilter(predicate)
        except ValueError:
            raise ValidationError(f"Unknown filter: {predicate}", field="filter")

        if predicate is TaskFilter.COMPLETED:
            return [task for task in self._tasks if task.completed]
        if predicate is TaskFilter.PENDING:
            return [task for task in self._tasks if not task.completed]
        return list(self._tasks)

    def search(self, term: Optional[str]) -> List[Task]:
        """Case-insensitive substring match on title or description."""
        if not term or not term.strip():
            return list(self._tasks)

        term = term.strip().lower()
        return [
            task for task in self._tasks
            if term in task.title.lower() or term in task.description.lower()
        ]

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a callback run after every change of state; returns its remover."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def clear_error(self):
        self.error = None
        self._notify()

    # -------------------------------------------------------------- mutations

    async def refresh(self) -> List[Task]:
        """
        Reload the whole collection from the store.

        On failure the previously loaded tasks are kept, the error is
        recorded and re-raised, and the core returns to READY.

        Mutations and feed events that land while the store is being read
        are applied again on top of the fetched snapshot, so a task deleted
        meanwhile stays deleted and a task written meanwhile is kept.
        """
        generation = self._generation
        self.state = SyncState.LOADING
        self.error = None
        self._notify()

        self._refreshing += 1
        started = self._sequence
        try:
            try:
                tasks = await self._gateway.list()
                advisory = await self._gateway.stats()
            except Exception as e:
                if generation == self._generation:
                    self.error = str(e)
                    self.state = SyncState.READY
                    self._notify()
                raise

            if self._is_stale(generation, "refresh"):
                return list(self._tasks)

            collection = self._overlay(self._unique(tasks), started)
        finally:
            self._refreshing -= 1
            if not self._refreshing:
                self._touched.clear()

        stats = TaskStats.from_tasks(collection)
        if advisory != stats:
            logger.debug(f"Store statistics {advisory} differ from loaded collection {stats}")

        self._tasks = collection
        self._stats = stats
        self.state = SyncState.READY
        self._notify()
        return list(self._tasks)

    async def create(self, title: str, description: Optional[str] = "") -> Task:
        """Create a task and put it at the head of the collection."""
        generation = self._generation
        try:
            task = await self._gateway.create(title, description)
        except Exception as e:
            self._record_failure(e, generation)
            raise

        if not self._is_stale(generation, "create"):
            self._apply_local(task)
        return task

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        """Apply a partial update; the stored result replaces the local copy."""
        generation = self._generation
        try:
            task = await self._gateway.update(task_id, patch)
        except Exception as e:
            self._record_failure(e, generation)
            raise

        if not self._is_stale(generation, "update"):
            self._apply_local(task)
        return task

    async def toggle(self, task_id: str, completed: bool) -> Task:
        """Set the completion flag of a task."""
        generation = self._generation
        try:
            task = await self._gateway.toggle(task_id, completed)
        except Exception as e:
            self._record_failure(e, generation)
            raise

        if not self._is_stale(generation, "toggle"):
            self._apply_local(task)
        return task

    async def delete(self, task_id: str):
        """Delete a task. Removing a task already gone locally is a no-op."""
        generation = self._generation
        try:
            await self._gateway.delete(task_id)
        except Exception as e:
            self._record_failure(e, generation)
            raise

        if self._is_stale(generation, "delete"):
            return

        removed = self._remove(task_id)
        if removed is not None:
            self._apply_delta(removed, None)
        self._settle()

    def apply_remote_event(self, event: ChangeEvent):
        """Fold one change feed event into the collection."""
        if not isinstance(event, ChangeEvent):
            logger.warning(f"Ignoring malformed change event: {event!r}")
            return

        if event.kind is ChangeKind.DELETE:
            self._remove(event.task.id)
        else:
            # An insert for a known id is the echo of our own write
            self._merge(event.task)

        # Two independent sources meet here, so recount instead of tracking deltas
        self._stats = TaskStats.from_tasks(self._tasks)
        self._settle()

    # ------------------------------------------------------------ lifecycle

    def subscribe(self, user_id: str):
        """Start applying change feed events for the user."""
        if self._unsubscribe is not None:
            return
        if self._subscriber is None:
            logger.warning("No change feed subscriber configured; realtime updates disabled")
            return

        on_reconnect = self._resync if self._refresh_on_reconnect else None
        self._unsubscribe = self._subscriber.subscribe(
            user_id, self.apply_remote_event, on_reconnect=on_reconnect
        )
        self._notify()

    def unsubscribe(self):
        """Release the change feed subscription, if any."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            self._notify()

    def feed_failed(self, error: Exception):
        """The change feed gave up: drop the subscription and surface the reason."""
        logger.error(f"Realtime updates stopped: {error}")
        self.unsubscribe()
        self.error = str(error)
        self._notify()

    def reset(self):
        """Forget everything: used on logout so the next user starts clean."""
        self._generation += 1
        self.unsubscribe()
        self._tasks = []
        self._touched.clear()
        self._stats = TaskStats()
        self.state = SyncState.EMPTY
        self.error = None
        self._notify()

    async def _resync(self):
        # Events missed while the feed was down are not replayed
        logger.info("Change feed reconnected; refreshing tasks")
        await self.refresh()

    # -------------------------------------------------------------- helpers

    def _apply_local(self, task: Task):
        previous, applied = self._merge(task)
        if applied:
            self._apply_delta(previous, task)
        self._settle()

    def _merge(self, incoming: Task) -> Tuple[Optional[Task], bool]:
        """
        Replace the task with the same id in place, or insert it at the head.

        A version older than the one held is ignored, so an insert and an
        update for the same row converge whichever arrives first.

        Returns:
            (previous version or None, whether the collection changed)
        """
        for index, existing in enumerate(self._tasks):
            if existing.id == incoming.id:
                if incoming.updated_at < existing.updated_at:
                    logger.debug(f"Ignoring outdated version of task {incoming.id}")
                    return existing, False
                self._tasks[index] = incoming
                self._touch(incoming.id, incoming)
                return existing, True

        self._tasks.insert(0, incoming)
        self._touch(incoming.id, incoming)
        return None, True

    def _remove(self, task_id: str) -> Optional[Task]:
        # Recorded even when absent: an in-flight snapshot may still hold it
        self._touch(task_id, None)
        for index, existing in enumerate(self._tasks):
            if existing.id == task_id:
                return self._tasks.pop(index)
        return None

    def _touch(self, task_id: str, task: Optional[Task]):
        self._sequence += 1
        if self._refreshing:
            self._touched[task_id] = (self._sequence, task)

    def _overlay(self, snapshot: List[Task], since: int) -> List[Task]:
        """Re-apply the changes recorded after ``since`` to a fetched snapshot. Deletes win."""
        collection = list(snapshot)
        changes = sorted(
            (sequence, task_id, task)
            for task_id, (sequence, task) in self._touched.items()
            if sequence > since
        )
        for _, task_id, task in changes:
            index = next((i for i, held in enumerate(collection) if held.id == task_id), None)
            if task is None:
                if index is not None:
                    collection.pop(index)
            elif index is None:
                collection.insert(0, task)
            elif task.updated_at >= collection[index].updated_at:
                collection[index] = task
        return collection

    def _apply_delta(self, before: Optional[Task], after: Optional[Task]):
        total = int(after is not None) - int(before is not None)
        completed = int(after is not None and after.completed) - int(before is not None and before.completed)
        self._stats = self._stats.with_delta(total=total, completed=completed)

    def _settle(self):
        if self.state is not SyncState.LOADING:
            self.state = SyncState.READY
        self._notify()

    def _record_failure(self, error: Exception, generation: int):
        if generation != self._generation:
            return
        self.error = str(error)
        self._notify()

    def _is_stale(self, generation: int, operation: str) -> bool:
        if generation == self._generation:
            return False
        logger.info(f"Discarding {operation} result that completed after reset")
        return True

    @staticmethod
    def _unique(tasks: List[Task]) -> List[Task]:
        seen = set()
        unique = []
        for task in tasks:
            if task.id not in seen:
                seen.add(task.id)
                unique.append(task)
        return unique

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Task change listener failed")
