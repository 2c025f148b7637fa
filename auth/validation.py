"""
auth/validation.py -- Input checks run before any storage access.

The HTTP layer validates body shape (types, presence) with Pydantic; these
checks own the business rules so the CLI and any other adapter get the same
behavior. Every failure raises ValidationFailedError.
"""

from __future__ import annotations

import re
import uuid

from auth.errors import ValidationFailedError

# Deliberately permissive: one @, no whitespace, a dot in the domain part.
_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

_MAX_EMAIL_LENGTH = 255
_MIN_PASSWORD_LENGTH = 8
# bcrypt ignores everything past 72 bytes.
_MAX_PASSWORD_BYTES = 72


def normalize_user_id(user_id: str) -> str:
    """Return the canonical (lowercase, hyphenated) form of a UUID string."""
    try:
        return str(uuid.UUID(str(user_id)))
    except ValueError as exc:
        raise ValidationFailedError("User id must be a UUID.") from exc


def validate_email(email: str) -> str:
    """Check email format. The value is returned unchanged -- emails are not normalized."""
    if not email or len(email) > _MAX_EMAIL_LENGTH or not _EMAIL_RE.fullmatch(email):
        raise ValidationFailedError("Email should be valid.")
    return email


def validate_password(password: str) -> str:
    """Require a lowercase letter, an uppercase letter and a digit, 8 chars to 72 bytes."""
    if (
        not password
        or len(password) < _MIN_PASSWORD_LENGTH
        or len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES
        or not re.search(r"[a-z]", password)
        or not re.search(r"[A-Z]", password)
        or not re.search(r"\d", password)
    ):
        raise ValidationFailedError(
            "Password must contain at least one lowercase letter, one uppercase letter, "
            "and one digit, and be between 8 characters and 72 bytes long."
        )
    return password
