"""Main FastAPI application for the Task Tracker."""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from app.config import ENVIRONMENT, LOG_LEVEL
from app.db.init import init_db
from app.middleware.cors import add_cors_middleware
from app.middleware.errors import add_exception_handlers
from app.routers import auth_router, realtime_router, tasks_router
from app.utils.logger import setup_logging

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "GET /api/tasks",
    "POST /api/tasks",
    "GET /api/tasks/stats",
    "GET /api/tasks/{id}",
    "PUT /api/tasks/{id}",
    "PATCH /api/tasks/{id}/toggle",
    "DELETE /api/tasks/{id}",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup."""
    setup_logging(LOG_LEVEL)
    init_db()
    logger.info("Application startup complete.")
    yield


# Create FastAPI application
app = FastAPI(
    title="Task Tracker API",
    description="REST API and change feed for a multi-user task tracker",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware and error envelopes
add_cors_middleware(app)
add_exception_handlers(app)

app.include_router(auth_router, prefix="/auth")  # Auth endpoints: /auth/sign-up, /auth/sign-in, ...
app.include_router(tasks_router, prefix="/api")  # Task endpoints: /api/tasks
app.include_router(realtime_router)  # Change feed: /ws/tasks


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": ENVIRONMENT}


@app.get("/")
async def root():
    """Root endpoint - API welcome message."""
    return {
        "message": "Task Tracker API is running",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {"tasks": "/api/tasks", "feed": "/ws/tasks"},
    }


@app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def api_not_found(path: str, request: Request):
    """Catch-all for unknown API endpoints."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Endpoint not found",
            "message": f"The route {request.method} {request.url.path} does not exist",
            "availableEndpoints": AVAILABLE_ENDPOINTS,
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=ENVIRONMENT == "development",
    )
