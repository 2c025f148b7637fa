"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
lifecycle manager do the work; these only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An identity record in the credential store.

    email is unique and compared exactly as stored -- no case folding or
    trimming. password_hash is written once at registration and never
    returned outside auth/.
    """

    id: str  # canonical UUID string, supplied by the caller
    email: str
    password_hash: str
    role: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RefreshTokenRecord:
    """A ledger entry for one issued refresh token.

    token_hash is HMAC-SHA256(secret, raw_token). The raw token is returned
    to the client once and never persisted.
    """

    token_hash: str
    user_id: str
    expires_at: datetime
    id: int | None = None
    is_revoked: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class UserSummary:
    """Redacted view of a User returned by registration -- never carries the hash."""

    id: str
    email: str
    role: str
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access-token lifetime in seconds


@dataclass(frozen=True)
class VerifiedToken:
    """The payload of a token whose signature and expiry checked out."""

    subject: str
    token_type: str | None  # "access" | "refresh"; None for tokens without the tag
    expires_at: datetime
    claims: dict
