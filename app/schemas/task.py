"""Task schemas for the Task Tracker API."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Iterable, Optional


class TaskCreate(BaseModel):
    """Schema for creating a task. Trimming and limits are checked by TaskValidator."""
    title: str
    description: Optional[str] = None


class TaskUpdate(BaseModel):
    """Schema for a partial task update.

    Only the fields present in the request body are applied; use
    ``changes()`` rather than reading attributes so an omitted field is
    never confused with one explicitly set to an empty value.
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


def completion_rate(completed: int, total: int) -> int:
    """Percentage of completed tasks, rounded half up; 0 for an empty list."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (2 * total)


class TaskStats(BaseModel):
    """Aggregate task statistics. Derived from a task list, never stored."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total: int = 0
    completed: int = 0
    pending: int = 0
    completion_rate: int = Field(default=0, alias="completionRate")

    @classmethod
    def from_counts(cls, total: int, completed: int) -> "TaskStats":
        return cls(
            total=total,
            completed=completed,
            pending=total - completed,
            completion_rate=completion_rate(completed, total),
        )

    @classmethod
    def from_tasks(cls, tasks: Iterable[Any]) -> "TaskStats":
        """Compute statistics from anything exposing a ``completed`` flag."""
        total = 0
        completed = 0
        for task in tasks:
            total += 1
            if task.completed:
                completed += 1
        return cls.from_counts(total, completed)

    def with_delta(self, total: int = 0, completed: int = 0) -> "TaskStats":
        """Apply the numeric effect of a single mutation."""
        return TaskStats.from_counts(self.total + total, self.completed + completed)
