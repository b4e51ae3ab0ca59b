"""Request and response bodies of the /auth endpoints."""
from pydantic import BaseModel, EmailStr, field_validator


class UserResponse(BaseModel):
    """Public user information; never includes the password hash."""
    id: str
    email: str


class TokenResponse(BaseModel):
    """Bearer token issued on sign-up and sign-in, with its owner."""
    token: str
    user: UserResponse


class Credentials(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class SignUpRequest(Credentials):
    """Password strength is checked by the router so it reports field=password."""


class SignInRequest(Credentials):
    pass


class PasswordUpdateRequest(BaseModel):
    password: str


class PasswordResetRequest(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class PasswordResetConfirm(BaseModel):
    """Reset token from the recovery message and the new password."""
    token: str
    password: str
