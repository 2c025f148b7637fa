"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request models check shape only (types, presence, length caps). Business
rules such as email format and password strength live in auth/validation.py
and surface as 400 validation_error, the same for every adapter.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import TokenPair, UserSummary

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsCreate(BaseModel):
    """Request body for POST /api/v1/auth/credentials."""

    id: str = Field(min_length=1, max_length=64, description="Caller-assigned user UUID.")
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=4096)


class ValidateRequest(BaseModel):
    token: str = Field(min_length=1, max_length=4096)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class CredentialsResponse(BaseModel):
    """Redacted user summary -- never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_summary(cls, summary: UserSummary) -> "CredentialsResponse":
        return cls(
            id=summary.id,
            email=summary.email,
            role=summary.role,
            created_at=summary.created_at.isoformat() if summary.created_at else "",
            updated_at=summary.updated_at.isoformat() if summary.updated_at else "",
        )


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
        )


class ValidateResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Logged out."


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    revoked: int


class DeleteUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted: bool


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    error: ErrorDetail
