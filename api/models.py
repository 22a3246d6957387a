"""
API request and response models for the account service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Redaction: AccountResponse is built field by field from an Account and has
no password_hash, verification_code or reset_token field at all, so a secret
cannot reach a response body by accident.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.models import Account

# ---------------------------------------------------------------------------
# Request models
#
# Fields are Optional so a missing field reaches the state machine, which
# answers with the same ValidationError message the rest of the API uses.
# Lengths are capped here; bcrypt's 72-byte limit is enforced downstream.
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup.

    email and name are trimmed; password is taken byte for byte, the same way
    login and reset read it.
    """

    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email", "name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/auth/verify-email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=320)
    code: Optional[str] = Field(default=None, max_length=16)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    email is a plain string (not EmailStr): a malformed address must get the
    same InvalidCredentials answer as an unknown one.
    """

    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=255)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/auth/forgot-password."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=320)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/reset-password/{token}."""

    password: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Credential-free projection of an Account, serialized in camelCase."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    email: str
    name: str
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        """Factory Method: the Account -> response mapping lives beside the response model."""
        return cls(
            id=account.id,
            email=account.email,
            name=account.name,
            is_verified=account.is_verified,
            last_login=account.last_login_at,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class AuthResponse(BaseModel):
    """The one response envelope every auth endpoint returns.

    Serialize with to_body(): unset optional keys are dropped, keys are camelCase.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: Optional[str] = None
    user: Optional[AccountResponse] = None
    is_verified: Optional[bool] = None

    def to_body(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]
