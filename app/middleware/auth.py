"""JWT authentication middleware for FastAPI."""
from fastapi import Request
from jose import jwt, JWTError
from pydantic import BaseModel
from typing import Any, Dict, Optional

from app.config import AUTH_SECRET, JWT_ALGORITHM
from app.errors import AuthError

PASSWORD_RESET_PURPOSE = "password_reset"


class CurrentUser(BaseModel):
    """User information extracted from JWT."""
    user_id: str
    email: Optional[str] = None


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify a JWT signed with the auth secret and return its claims.

    Raises:
        AuthError: If token is invalid, expired or has no subject
    """
    if token.startswith("Bearer "):
        token = token[7:]

    try:
        payload = jwt.decode(token, AUTH_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except JWTError as e:
        raise AuthError(f"Invalid token: {str(e)}")

    if not payload.get("sub"):
        raise AuthError("Invalid token: missing user ID")
    return payload


def decode_access_token(token: str) -> CurrentUser:
    """
    Validate a JWT and extract the user it was issued to.

    Args:
        token: Raw JWT, with or without the "Bearer " prefix

    Returns:
        CurrentUser with user_id and email from token

    Raises:
        AuthError: If token is invalid, expired, has no subject or was
            issued for another purpose such as a password reset
    """
    payload = decode_token(token)
    if payload.get("purpose"):
        raise AuthError("Invalid token: not an access token")

    return CurrentUser(user_id=payload["sub"], email=payload.get("email"))


def decode_reset_token(token: str) -> Dict[str, Any]:
    """Claims of a password reset token."""
    payload = decode_token(token)
    if payload.get("purpose") != PASSWORD_RESET_PURPOSE:
        raise AuthError("Invalid token: not a password reset token")
    return payload


async def get_current_user(request: Request) -> CurrentUser:
    """
    Validate the bearer token from the Authorization header.

    Raises:
        AuthError: If the header is missing or the token is invalid or expired
    """
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")

    return decode_access_token(auth_header[7:])
