"""Task router: thin relay between HTTP and the task store."""
from fastapi import APIRouter, Depends, status
from typing import Any, Dict

from app.schemas.task import TaskCreate, TaskUpdate
from app.services.task_service import TaskService
from app.middleware.auth import get_current_user, CurrentUser
from app.realtime.broadcaster import task_change_broadcaster
from app.db.config import get_session
from sqlmodel import Session

router = APIRouter(prefix="/tasks", tags=["Tasks"])  # main.py adds the /api prefix


def get_task_service(session: Session = Depends(get_session)) -> TaskService:
    """Dependency for getting TaskService instance."""
    return TaskService(session)


@router.get("", response_model=Dict[str, Any])
async def list_tasks(
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """List the authenticated user's tasks, most recent first."""
    tasks = service.list_for_user(current_user.user_id)
    return {
        "success": True,
        "data": [task.to_row() for task in tasks],
        "count": len(tasks)
    }


@router.post("", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a new task."""
    task = service.create(
        user_id=current_user.user_id,
        title=task_data.title,
        description=task_data.description
    )
    row = task.to_row()
    await task_change_broadcaster.publish_change("insert", row)
    return {"success": True, "data": row, "message": "Task created"}


@router.get("/stats", response_model=Dict[str, Any])
async def task_stats(
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Aggregate counters for the authenticated user's tasks."""
    stats = service.stats(current_user.user_id)
    return {"success": True, "data": stats.model_dump(by_alias=True)}


@router.get("/{task_id}", response_model=Dict[str, Any])
async def get_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get a specific task by ID."""
    task = service.get_by_id(task_id, current_user.user_id)
    return {"success": True, "data": task.to_row()}


@router.put("/{task_id}", response_model=Dict[str, Any])
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Update any subset of title, description and completed."""
    task = service.update(task_id, current_user.user_id, task_data.changes())
    row = task.to_row()
    await task_change_broadcaster.publish_change("update", row)
    return {"success": True, "data": row, "message": "Task updated"}


@router.patch("/{task_id}/toggle", response_model=Dict[str, Any])
async def toggle_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Flip task completion status."""
    task = service.toggle_complete(task_id, current_user.user_id)
    row = task.to_row()
    await task_change_broadcaster.publish_change("update", row)
    message = "Task completed" if task.completed else "Task marked as pending"
    return {"success": True, "data": row, "message": message}


@router.delete("/{task_id}", response_model=Dict[str, Any])
async def delete_task(
    task_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task and return the deleted row."""
    row = service.delete(task_id, current_user.user_id)
    await task_change_broadcaster.publish_change("delete", row)
    return {"success": True, "data": row, "message": "Task deleted"}
