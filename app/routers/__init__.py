"""Routers package for the Task Tracker."""

from .auth import router as auth_router
from .realtime import router as realtime_router
from .tasks import router as tasks_router

__all__ = ["auth_router", "realtime_router", "tasks_router"]
