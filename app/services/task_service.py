"""Task service: row-scoped CRUD against the task store."""
from sqlmodel import Session, select
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict, List
import logging

from app.errors import NotFoundError, StoreError
from app.models.task import Task, utcnow
from app.schemas.task import TaskStats
from app.services.task_validator import TaskValidator

logger = logging.getLogger(__name__)


class TaskService:
    """Service class for task CRUD operations, always scoped to one owner."""

    def __init__(self, session: Session):
        self.session = session

    def list_for_user(self, user_id: str) -> List[Task]:
        """Get all tasks owned by a user, most recently created first."""
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .order_by(Task.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def get_by_id(self, task_id: str, user_id: str) -> Task:
        """
        Get a specific task by ID, ensuring user ownership.

        Raises:
            NotFoundError: If no task with this id is owned by the user
        """
        statement = (
            select(Task)
            .where(Task.id == task_id)
            .where(Task.user_id == user_id)
        )
        task = self.session.exec(statement).first()
        if not task:
            raise NotFoundError("Task not found or you do not have permission to access it")
        return task

    def create(self, user_id: str, title: str, description: str = "") -> Task:
        """Create a new task; owner and timestamps are stamped here."""
        now = utcnow()
        task = Task(
            user_id=user_id,
            title=TaskValidator.clean_title(title),
            description=TaskValidator.clean_description(description),
            completed=False,
            created_at=now,
            updated_at=now
        )
        self._commit(task)
        logger.info(f"Created task {task.id} for user {user_id}")
        return task

    def update(self, task_id: str, user_id: str, changes: Dict[str, Any]) -> Task:
        """
        Apply a partial update to a task.

        Args:
            task_id: ID of task to update
            user_id: Owner of the task
            changes: Only the fields supplied by the caller

        Raises:
            ValidationError: If the change set is empty or invalid
            NotFoundError: If the task does not exist or is not owned
        """
        cleaned = TaskValidator.clean_changes(changes)
        task = self.get_by_id(task_id, user_id)

        for name, value in cleaned.items():
            setattr(task, name, value)

        task.updated_at = utcnow()
        self._commit(task)
        return task

    def toggle_complete(self, task_id: str, user_id: str) -> Task:
        """Flip task completion status."""
        task = self.get_by_id(task_id, user_id)
        return self.update(task_id, user_id, {"completed": not task.completed})

    def delete(self, task_id: str, user_id: str) -> Dict[str, Any]:
        """Delete a task, ensuring user ownership. Returns the deleted row."""
        task = self.get_by_id(task_id, user_id)
        row = task.to_row()
        try:
            self.session.delete(task)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to delete task {task_id}: {e}")
            raise StoreError("Failed to delete task") from e
        return row

    def stats(self, user_id: str) -> TaskStats:
        """Aggregate counters computed from a fresh read of the user's tasks."""
        return TaskStats.from_tasks(self.list_for_user(user_id))

    def _commit(self, task: Task):
        try:
            self.session.add(task)
            self.session.commit()
            self.session.refresh(task)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to save task: {e}")
            raise StoreError("Failed to save task") from e
