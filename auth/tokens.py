"""
auth/tokens.py -- JWT signing/verification and refresh-token hashing.

Security design decisions:
  JWT: python-jose with HS256, keyed with the base64-decoded SECRET_KEY.
       Every token carries sub (user id), exp, iat, a random jti and an
       explicit type claim ("access" or "refresh"). Access tokens also carry
       the user's role. verify() returns None on any failure -- the cause
       (expired, malformed, bad signature, unsupported algorithm, bad claims)
       is only written to the debug log.

  Token type: an access token is one with type == "access" AND a non-empty
       role claim. Older deployments told the two kinds apart by the role
       claim alone; requiring both keeps that rule true while making the
       discriminant explicit.

  jti: two tokens minted for the same user in the same second would otherwise
       be byte-identical, and their ledger hashes would collide on the
       UNIQUE(token_hash) constraint.

  Refresh-token hashing: HMAC-SHA256(SECRET_KEY, raw_token). The token is
       already high-entropy, so bcrypt's slowness buys nothing; a keyed,
       deterministic hash allows O(1) lookup via the unique index while a
       leaked ledger is useless without the key.

Layer rule: no imports from api/ or core/. The signer receives its key and
TTLs from the caller.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

from auth.models import VerifiedToken

logger = logging.getLogger("authservice.tokens")

ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

# Claims the signer owns; callers cannot override them through `claims`.
_RESERVED = frozenset({"sub", "exp", "iat", "jti", "type"})


class TokenSigner:
    """Issues and verifies compact HS256 tokens. Stateless apart from the key.

    Usage:
        signer = TokenSigner(key_bytes)
        token = signer.issue_access_token("b3c1...", {"role": "ROLE_USER"}, 900)
        signer.verify(token)             # VerifiedToken or None
        signer.get_claim(token, "role")  # "ROLE_USER"
    """

    def __init__(self, key: bytes) -> None:
        if not key:
            raise ValueError("Signing key must not be empty.")
        self._key = key

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: str, claims: dict[str, Any], ttl_seconds: int) -> str:
        """Sign an access token. `claims` must include a non-empty role."""
        if not claims.get("role"):
            raise ValueError("Access tokens require a role claim.")
        return self._issue(user_id, ACCESS, claims, ttl_seconds)

    def issue_refresh_token(self, user_id: str, ttl_seconds: int) -> str:
        """Sign a refresh token. Carries no role claim by construction."""
        return self._issue(user_id, REFRESH, {}, ttl_seconds)

    def _issue(self, user_id: str, token_type: str, claims: dict[str, Any], ttl_seconds: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {k: v for k, v in claims.items() if k not in _RESERVED}
        payload.update(
            {
                "sub": str(user_id),
                "type": token_type,
                "jti": uuid.uuid4().hex,
                "iat": now,
                "exp": now + timedelta(seconds=ttl_seconds),
            }
        )
        return jwt.encode(payload, self._key, algorithm=ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str) -> VerifiedToken | None:
        """Check signature and expiry. Returns the payload or None on any failure."""
        payload = self._decode(token)
        if payload is None:
            return None
        return VerifiedToken(
            subject=payload["sub"],
            token_type=payload.get("type"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            claims=payload,
        )

    def get_claim(self, token: str, name: str) -> Any | None:
        """Best-effort claim read. Any verification failure reads as "claim absent"."""
        payload = self._decode(token)
        if payload is None:
            return None
        return payload.get(name)

    def expires_at(self, token: str) -> datetime | None:
        """The signed expiry of a token this signer accepts; None otherwise."""
        verified = self.verify(token)
        return verified.expires_at if verified is not None else None

    def is_access_token(self, token: str) -> bool:
        verified = self.verify(token)
        return verified is not None and is_access(verified)

    def _decode(self, token: str) -> dict | None:
        if not token or not isinstance(token, str):
            logger.debug("Token rejected: empty")
            return None
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            logger.debug("Token rejected: malformed (%s)", exc)
            return None
        if header.get("alg") != ALGORITHM:
            logger.debug("Token rejected: unsupported algorithm %r", header.get("alg"))
            return None
        try:
            payload = jwt.decode(token, self._key, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            logger.debug("Token rejected: expired")
            return None
        except JWTClaimsError as exc:
            logger.debug("Token rejected: invalid claims (%s)", exc)
            return None
        except JWTError as exc:
            logger.debug("Token rejected: bad signature (%s)", exc)
            return None
        if not payload.get("sub") or "exp" not in payload:
            logger.debug("Token rejected: missing sub or exp")
            return None
        return payload


def is_access(verified: VerifiedToken) -> bool:
    """True for a verified access token: explicit type tag plus a non-blank role claim."""
    role = verified.claims.get("role")
    return verified.token_type == ACCESS and isinstance(role, str) and bool(role.strip())


def is_refresh(verified: VerifiedToken) -> bool:
    """True for a verified refresh token: explicit type tag and no role claim."""
    return verified.token_type == REFRESH and not verified.claims.get("role")


def hash_refresh_token(raw_token: str, key: bytes) -> str:
    """Return HMAC-SHA256(key, raw_token) as a hex string."""
    return hmac.new(key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()
