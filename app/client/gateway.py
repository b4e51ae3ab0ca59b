"""
Task Store Gateway.

The only component that issues task CRUD calls to the remote store. It
validates and trims input before any request is sent and turns every
response into either a Task or one of the errors in ``app.errors``.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.client.models import Task, TaskPatch, TaskStats
from app.errors import ERRORS_BY_STATUS, AuthError, StoreError
from app.services.task_validator import TaskValidator

logger = logging.getLogger(__name__)

TASKS_PATH = "/api/tasks"


class TaskStoreGateway:
    """Stateless translator from task operations to task store requests."""

    def __init__(self, client: httpx.AsyncClient, token_provider: Callable[[], Optional[str]]):
        """
        Args:
            client: HTTP client whose base_url points at the API
            token_provider: Returns the current bearer token, or None when signed out
        """
        self._client = client
        self._token_provider = token_provider

    async def list(self) -> List[Task]:
        """Fetch all tasks of the current user, most recently created first."""
        rows = await self._request("GET", TASKS_PATH)
        return [self._to_task(row) for row in rows]

    async def get(self, task_id: str) -> Task:
        """Fetch one owned task."""
        return self._to_task(await self._request("GET", f"{TASKS_PATH}/{task_id}"))

    async def create(self, title: str, description: Optional[str] = "") -> Task:
        """
        Create a task. The store stamps owner, timestamps and completed=False.

        Raises:
            ValidationError: Before any request when the title is empty after trimming
        """
        payload = {
            "title": TaskValidator.clean_title(title),
            "description": TaskValidator.clean_description(description),
        }
        return self._to_task(await self._request("POST", TASKS_PATH, json=payload))

    async def update(self, task_id: str, patch: TaskPatch) -> Task:
        """
        Apply a partial update.

        Raises:
            ValidationError: Before any request when the patch is empty or invalid
            NotFoundError: When no owned row matches the id
        """
        payload = TaskValidator.clean_changes(patch.fields())
        return self._to_task(await self._request("PUT", f"{TASKS_PATH}/{task_id}", json=payload))

    async def delete(self, task_id: str) -> None:
        """
        Delete an owned task.

        Raises:
            NotFoundError: When no owned row matches the id
        """
        await self._request("DELETE", f"{TASKS_PATH}/{task_id}")

    async def toggle(self, task_id: str, completed: bool) -> Task:
        """Set the completion flag."""
        return await self.update(task_id, TaskPatch(completed=completed))

    async def stats(self) -> TaskStats:
        """Counters from a fresh read of the store; advisory only."""
        data = await self._request("GET", f"{TASKS_PATH}/stats")
        try:
            return TaskStats.model_validate(data)
        except PydanticValidationError as e:
            raise StoreError(f"Malformed statistics from task store: {e}") from e

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        token = self._token_provider()
        if not token:
            raise AuthError("Not authenticated")

        try:
            response = await self._client.request(
                method, path, json=json, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise StoreError(f"Task store unreachable: {e}") from e

        return self._unwrap(method, path, response)

    @staticmethod
    def _unwrap(method: str, path: str, response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success:
            if "data" not in body:
                raise StoreError(f"Unexpected response from task store for {method} {path}")
            return body["data"]

        message = body.get("message") or body.get("error") or response.reason_phrase
        error_class = ERRORS_BY_STATUS.get(response.status_code, StoreError)
        logger.warning(f"{method} {path} -> {response.status_code}: {message}")
        raise error_class(message, field=body.get("field"))

    @staticmethod
    def _to_task(row: Any) -> Task:
        try:
            return Task.model_validate(row)
        except PydanticValidationError as e:
            raise StoreError(f"Malformed task from task store: {e}") from e
