"""User model for SQLModel."""
from sqlmodel import SQLModel, Session, Field, Relationship, select
from datetime import datetime
from typing import TYPE_CHECKING, Optional
import uuid

from app.models.task import utcnow

if TYPE_CHECKING:
    from app.models.task import Task


class User(SQLModel, table=True):
    """Account owning tasks. Emails are stored lower-cased."""

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True
    )
    email: str = Field(unique=True, index=True, max_length=255)
    hashed_password: str = Field(max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Deleting a user removes their tasks
    tasks: list["Task"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    @classmethod
    def find_by_email(cls, session: Session, email: str) -> Optional["User"]:
        return session.exec(select(cls).where(cls.email == email.lower())).first()
