"""Initialize database tables."""
from typing import Optional
import logging

from sqlmodel import SQLModel
from sqlalchemy.engine import Engine

from app.models.user import User  # noqa: F401
from app.models.task import Task  # noqa: F401
from app.db import config

logger = logging.getLogger(__name__)


def init_db(bind: Optional[Engine] = None):
    """Create all tables in the database."""
    logger.info("Creating all tables...")
    SQLModel.metadata.create_all(bind or config.engine)
    logger.info("Tables created successfully.")


if __name__ == "__main__":
    init_db()
