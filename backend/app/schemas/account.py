# backend/app/schemas/account.py
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# At least one lowercase, uppercase, digit and special character
_STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])")


def normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValueError("Please provide a valid email")
    return value


class EmailOnly(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)


class RegistrationRequest(BaseModel):
    """Body of POST /auth/register. No account exists until the code is verified."""
    email: str
    password: str = Field(..., min_length=8, max_length=128)
    master_password: str = Field(..., min_length=8, max_length=128)
    first_name: str
    last_name: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def _strong_password(cls, v: str) -> str:
        if not _STRONG_PASSWORD_RE.match(v):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase "
                "letter, one number, and one special character"
            )
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return v


class CodeSubmission(BaseModel):
    email: str
    otp: str = Field(..., min_length=1, max_length=12)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("otp", mode="before")
    @classmethod
    def _otp(cls, v) -> str:
        return str(v).strip()


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)
    two_factor_otp: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)


class ResetPasswordRequest(CodeSubmission):
    password: str = Field(..., min_length=8, max_length=128)


class MasterPasswordRequest(BaseModel):
    master_password: str = Field(..., min_length=1)


class PasswordConfirmation(BaseModel):
    password: str = Field(..., min_length=1)


class OtpOnly(BaseModel):
    otp: str = Field(..., min_length=1, max_length=12)


class AccountResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    is_email_verified: bool
    two_factor_enabled: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthResult(BaseModel):
    """Outcome of a login, registration or reset.

    ``requires_two_factor`` results carry neither account nor token.
    """
    success: bool = True
    message: str
    requires_two_factor: bool = False
    access_token: Optional[str] = None
    token_type: str = "bearer"
    account: Optional[AccountResponse] = None


class Acknowledgment(BaseModel):
    success: bool = True
    message: str
    email: Optional[str] = None


class TokenPayload(BaseModel):
    sub: Optional[str] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class MasterPasswordChange(BaseModel):
    current_master_password: str = Field(..., min_length=1)
    new_master_password: str = Field(..., min_length=8, max_length=128)


class SettingsUpdate(BaseModel):
    # two_factor_enabled is only changed through the verified 2FA setup flow
    email_notifications: Optional[bool] = None
    security_alerts: Optional[bool] = None
    auto_logout: Optional[int] = Field(default=None, ge=1, le=1440)


class AccountSettings(BaseModel):
    two_factor_enabled: bool
    email_notifications: bool
    security_alerts: bool
    auto_logout: int
    total_passwords: int = 0
    favorite_passwords: int = 0
    total_categories: int = 0
    total_tags: int = 0


class AccountDeletion(BaseModel):
    password: str = Field(..., min_length=1)
    master_password: str = Field(..., min_length=1)
