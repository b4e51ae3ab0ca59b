"""Client library for the Task Tracker API."""

from .context import AppContext
from .models import ChangeEvent, ChangeKind, SyncState, Task, TaskFilter, TaskPatch, TaskStats
from .session import SessionCore
from .sync import TaskSyncCore

__all__ = [
    "AppContext", "SessionCore", "TaskSyncCore", "Task", "TaskPatch", "TaskStats",
    "TaskFilter", "ChangeEvent", "ChangeKind", "SyncState",
]
