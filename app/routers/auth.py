"""Authentication router for the Task Tracker."""
from fastapi import APIRouter, Depends, status
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import bcrypt
import jwt

from app.config import (
    AUTH_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_DAYS, MIN_PASSWORD_LENGTH, PASSWORD_RESET_EXPIRE_MINUTES
)
from app.errors import AuthError, ValidationError
from app.schemas.auth import (
    SignUpRequest, SignInRequest, PasswordUpdateRequest, PasswordResetRequest, PasswordResetConfirm,
    TokenResponse, UserResponse
)
from app.middleware.auth import get_current_user, decode_reset_token, CurrentUser, PASSWORD_RESET_PURPOSE
from app.db.config import get_session
from app.models.task import utcnow
from app.models.user import User
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

router = APIRouter(tags=["Authentication"])  # main.py adds the /auth prefix

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If the address is registered, a recovery message has been sent"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def check_password_strength(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            field="password"
        )


def create_jwt_token(user_id: str, email: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": now + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS),
        "iat": now,
    }
    return jwt.encode(payload, AUTH_SECRET, algorithm=JWT_ALGORITHM)


def password_fingerprint(user: User) -> str:
    """Changes whenever the password does, which retires older reset tokens."""
    return hashlib.sha256(user.hashed_password.encode("utf-8")).hexdigest()[:16]


def create_reset_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "purpose": PASSWORD_RESET_PURPOSE,
        "pwd": password_fingerprint(user),
        "exp": now + timedelta(minutes=PASSWORD_RESET_EXPIRE_MINUTES),
        "iat": now,
    }
    return jwt.encode(payload, AUTH_SECRET, algorithm=JWT_ALGORITHM)


def token_response(user: User) -> TokenResponse:
    return TokenResponse(
        token=create_jwt_token(user.id, user.email),
        user=UserResponse(id=user.id, email=user.email)
    )


def get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise AuthError("User not found for this token")
    return user


def set_password(session: Session, user: User, password: str):
    user.hashed_password = hash_password(password)
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)


@router.post("/sign-up", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(request: SignUpRequest, session: Session = Depends(get_session)):
    """Register a new account and sign it in."""
    check_password_strength(request.password)

    if User.find_by_email(session, request.email):
        raise ValidationError("User with this email already exists", field="email")

    user = User(email=request.email, hashed_password=hash_password(request.password))
    session.add(user)
    try:
        session.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent sign-up for the same address
        session.rollback()
        raise ValidationError("User with this email already exists", field="email") from e
    session.refresh(user)

    logger.info(f"Registered user {user.id}")
    return token_response(user)


@router.post("/sign-in", response_model=TokenResponse)
async def sign_in(request: SignInRequest, session: Session = Depends(get_session)):
    """Exchange email and password for a token."""
    user = User.find_by_email(session, request.email)

    if not user or not verify_password(request.password, user.hashed_password):
        raise AuthError("Invalid email or password")

    return token_response(user)


@router.post("/sign-out")
async def sign_out(current_user: CurrentUser = Depends(get_current_user)):
    """Tokens are stateless; the client discards its copy."""
    logger.info(f"User {current_user.user_id} signed out")
    return {"success": True, "message": "Signed out"}


@router.get("/me", response_model=UserResponse)
async def me(
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Return the user the bearer token belongs to."""
    user = get_user(session, current_user.user_id)
    return UserResponse(id=user.id, email=user.email)


@router.put("/password", response_model=UserResponse)
async def update_password(
    request: PasswordUpdateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Change the password of the authenticated user."""
    check_password_strength(request.password)
    user = get_user(session, current_user.user_id)

    set_password(session, user, request.password)
    return UserResponse(id=user.id, email=user.email)


@router.post("/password-reset")
async def request_password_reset(request: PasswordResetRequest, session: Session = Depends(get_session)):
    """
    Issue a short-lived password reset token.

    Outgoing mail is not configured, so the token is written to the log in
    place of a recovery e-mail. The answer does not reveal whether the
    address is registered.
    """
    user = User.find_by_email(session, request.email)
    if user:
        token = create_reset_token(user)
        logger.info(f"Password reset requested for {user.email}; reset token: {token}")
    else:
        logger.info("Password reset requested for an unregistered address")

    return {"success": True, "message": RESET_REQUESTED_MESSAGE}


@router.post("/password-reset/confirm", response_model=TokenResponse)
async def confirm_password_reset(request: PasswordResetConfirm, session: Session = Depends(get_session)):
    """Set a new password with a reset token and sign the user in. A token works once."""
    check_password_strength(request.password)
    claims = decode_reset_token(request.token)

    user = session.get(User, claims["sub"])
    if not user or claims.get("pwd") != password_fingerprint(user):
        raise AuthError("Reset token is no longer valid")

    set_password(session, user, request.password)
    logger.info(f"Password reset completed for user {user.id}")
    return token_response(user)
