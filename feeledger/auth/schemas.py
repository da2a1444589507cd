from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from feeledger.core.schemas import CamelModel

PASSWORD_MIN_LENGTH = 6


class RegisterRequest(CamelModel):
    """First-time setup. The email is fixed by configuration, so only a password and name are taken."""

    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    name: Optional[str] = Field(None, max_length=255)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class UpdateProfileRequest(CamelModel):
    name: Optional[str] = Field(None, max_length=255)


class VerifyOtpRequest(CamelModel):
    otp: str = Field(..., min_length=1, max_length=10)


class ResetPasswordRequest(CamelModel):
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class AdminInfo(CamelModel):
    id: UUID
    email: str
    name: str
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class AuthData(AdminInfo):
    token: str


class TokenData(CamelModel):
    token: str


class SetupStatus(CamelModel):
    setup_required: bool
    admin_email: str


class MaskedEmail(CamelModel):
    email: str


class CurrentAdmin(CamelModel):
    """Lightweight representation of the authenticated admin."""

    id: UUID
    email: str
    name: str
