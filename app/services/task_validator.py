"""Task input validation shared by the API and the client Gateway."""
from typing import Any, Dict, Optional

from app.errors import ValidationError

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
UPDATABLE_FIELDS = ("title", "description", "completed")


class TaskValidator:
    """Trim and validate task fields before they reach the task store."""

    @staticmethod
    def clean_title(title: Optional[str]) -> str:
        """
        Trim and validate a task title.

        Args:
            title: Raw title as supplied by the caller

        Returns:
            The trimmed title

        Raises:
            ValidationError: If the title is empty after trimming or too long
        """
        if title is None or not isinstance(title, str) or not title.strip():
            raise ValidationError("Task title is required", field="title")

        title = title.strip()
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Task title cannot exceed {TITLE_MAX_LENGTH} characters",
                field="title"
            )
        return title

    @staticmethod
    def clean_description(description: Optional[str]) -> str:
        """
        Trim and validate a task description. Missing descriptions become "".

        Raises:
            ValidationError: If the description is too long or not a string
        """
        if description is None:
            return ""
        if not isinstance(description, str):
            raise ValidationError("Task description must be text", field="description")

        description = description.strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Task description cannot exceed {DESCRIPTION_MAX_LENGTH} characters",
                field="description"
            )
        return description

    @staticmethod
    def clean_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a partial update.

        Args:
            changes: Mapping holding only the fields the caller supplied

        Returns:
            Cleaned mapping with the same keys

        Raises:
            ValidationError: If the mapping is empty or any field is invalid
        """
        if not changes:
            raise ValidationError("No fields to update")

        unknown = [name for name in changes if name not in UPDATABLE_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown field: {unknown[0]}", field=unknown[0])

        cleaned: Dict[str, Any] = {}
        if "title" in changes:
            cleaned["title"] = TaskValidator.clean_title(changes["title"])
        if "description" in changes:
            cleaned["description"] = TaskValidator.clean_description(changes["description"])
        if "completed" in changes:
            if not isinstance(changes["completed"], bool):
                raise ValidationError("Completed must be true or false", field="completed")
            cleaned["completed"] = changes["completed"]
        return cleaned
