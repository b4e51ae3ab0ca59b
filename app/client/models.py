"""Client-side models for the task synchronization core."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from app.schemas.task import TaskStats

__all__ = [
    "Task", "TaskPatch", "TaskStats", "TaskFilter", "ChangeKind", "ChangeEvent",
    "SyncState", "AuthUser", "AuthSession", "AuthResult", "UNSET",
]


class Task(BaseModel):
    """A task row as seen by the client."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    title: str
    description: str = ""
    completed: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description(cls, value: Any) -> Any:
        return "" if value is None else value


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET


@dataclass(frozen=True)
class TaskPatch:
    """Partial task update.

    Every field starts as ``UNSET``. A field is sent only when it holds a
    value, so ``TaskPatch(description="")`` clears the description while
    ``TaskPatch(title="x")`` leaves it alone.
    """
    title: Union[str, _Unset] = UNSET
    description: Union[str, _Unset] = UNSET
    completed: Union[bool, _Unset] = UNSET

    def fields(self) -> Dict[str, Any]:
        """The supplied fields only."""
        return {
            name: value
            for name, value in (
                ("title", self.title),
                ("description", self.description),
                ("completed", self.completed),
            )
            if value is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.fields()


class TaskFilter(str, Enum):
    ALL = "all"
    COMPLETED = "completed"
    PENDING = "pending"


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level notification from the change feed."""
    kind: ChangeKind
    task: Task


class SyncState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"


class AuthUser(BaseModel):
    """Identity returned by the authentication service."""
    model_config = ConfigDict(frozen=True)

    id: str
    email: str


class AuthSession(BaseModel):
    access_token: str
    user: AuthUser


class AuthResult(BaseModel):
    """Outcome of sign-up or sign-in. A missing session means the e-mail must be confirmed first."""
    user: AuthUser
    session: Optional[AuthSession] = None

    @property
    def requires_email_confirmation(self) -> bool:
        return self.session is None
