"""CORS configuration for the browser front end."""
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.config import ENVIRONMENT, FRONTEND_URL

logger = logging.getLogger(__name__)

# Base allowed origins for development
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
]

# Add production frontend URL if provided
if FRONTEND_URL and FRONTEND_URL not in ALLOWED_ORIGINS:
    ALLOWED_ORIGINS.append(FRONTEND_URL)


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    # In production only the configured front end may call the API
    if ENVIRONMENT == "production":
        logger.info(f"Using production CORS for origin: {FRONTEND_URL}")
        allowed = [FRONTEND_URL]
    else:
        logger.info(f"Using development CORS with origins: {ALLOWED_ORIGINS}")
        allowed = ALLOWED_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
