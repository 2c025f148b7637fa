"""
auth/service.py -- Token lifecycle manager.

AuthService composes the credential store, the refresh-token ledger, the
token signer and the password hasher into the request operations:
register, login, refresh, validate, logout, logout_all and delete_user. All
four collaborators are passed in by the caller; only api/main.py and main.py
decide which concrete implementations to use.

Refresh-token life:  issued -> (valid | revoked | expired) -> purged

  - A refresh token stays usable for repeated renewals until it expires or
    is revoked. refresh() does not revoke the presented token.
  - Two concurrent refresh() calls with the same valid token may both
    succeed; each mints its own independent pair.

Error policy:
  Storage (SQLAlchemyError) and signing (JWTError) failures are logged with
  their traceback and re-raised as InternalError. Nothing lower-level leaves
  this module. Authentication failures use fixed messages.

Timing equalization:
  login() runs bcrypt against a dummy hash when the email is unknown, so
  response time does not reveal whether an account exists.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from jose.exceptions import JWTError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AlreadyExistsError,
    InternalError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
)
from auth.ledger import RefreshTokenLedger
from auth.models import TokenPair, User, UserSummary
from auth.passwords import BcryptPasswordHasher
from auth.store import UserStore, utcnow
from auth.tokens import TokenSigner, hash_refresh_token, is_refresh
from auth.validation import normalize_user_id, validate_email, validate_password

logger = logging.getLogger("authservice.auth")


class AuthService:
    """Credential registration, token issuance, renewal and validation.

    Usage:
        service = AuthService(
            users=UserStore(engine),
            ledger=RefreshTokenLedger(engine),
            signer=TokenSigner(key),
            hasher=BcryptPasswordHasher(),
            token_hash_key=key,
            access_ttl=900,
            refresh_ttl=604800,
            default_role="ROLE_USER",
        )
        pair = service.login("a@b.io", "S3cretPassw0rd")
        service.validate(pair.access_token)  # True
    """

    def __init__(
        self,
        users: UserStore,
        ledger: RefreshTokenLedger,
        signer: TokenSigner,
        hasher: BcryptPasswordHasher,
        token_hash_key: bytes,
        access_ttl: int,
        refresh_ttl: int,
        default_role: str,
    ) -> None:
        self.users = users
        self.ledger = ledger
        self.signer = signer
        self.hasher = hasher
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.default_role = default_role
        self._token_hash_key = token_hash_key
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy_hash = hasher.hash("authservice-timing-dummy")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, user_id: str, email: str, password: str, role: str | None = None) -> UserSummary:
        """Create a user with a hashed password. Rejects duplicate email or id.

        `role` is for ops tooling (main.py create-admin); the HTTP route
        never passes it, so self-registered users always get default_role.
        """
        user_id = normalize_user_id(user_id)
        validate_email(email)
        validate_password(password)
        logger.debug("Registering user with email: %s", email)

        with self._guard("register"):
            if self.users.exists_by_email(email) or self.users.exists_by_id(user_id):
                raise AlreadyExistsError()
            user = User(
                id=user_id,
                email=email,
                password_hash=self.hasher.hash(password),
                role=role or self.default_role,
            )
            try:
                self.users.create_user(user)
            except IntegrityError as exc:
                # Lost a race with a concurrent registration.
                raise AlreadyExistsError() from exc

        logger.info("User %s registered", user.id)
        return UserSummary.from_user(user)

    def login(self, email: str, password: str) -> TokenPair:
        """Verify credentials and mint a token pair.

        Unknown email and wrong password raise the same InvalidCredentialsError.
        """
        with self._guard("login"):
            user = self.users.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.verify(password, self._dummy_hash)
            logger.debug("Login rejected")
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, user.password_hash):
            logger.debug("Login rejected")
            raise InvalidCredentialsError()

        logger.debug("User %s logged in", user.id)
        return self._mint_pair(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a new pair.

        The signature check comes first; the ledger is authoritative for
        revocation and expiry. Every failure is the same InvalidRefreshTokenError.
        """
        verified = self.signer.verify(refresh_token)
        if verified is None or not is_refresh(verified):
            logger.debug("Refresh rejected: token did not verify as a refresh token")
            raise InvalidRefreshTokenError()

        token_hash = hash_refresh_token(refresh_token, self._token_hash_key)
        with self._guard("refresh"):
            record = self.ledger.find_by_hash(token_hash)
            if record is None or record.is_revoked or record.expires_at <= utcnow():
                logger.debug("Refresh rejected: ledger record missing, revoked or expired")
                raise InvalidRefreshTokenError()
            user = self.users.get_by_id(record.user_id)
        if user is None:
            logger.debug("Refresh rejected: owner no longer exists")
            raise InvalidRefreshTokenError()

        logger.debug("Refresh accepted for user %s", user.id)
        return self._mint_pair(user)

    def validate(self, token: str) -> bool:
        """True iff the token verifies AND is an access token. Never raises."""
        try:
            return self.signer.is_access_token(token)
        except Exception:
            logger.exception("Unexpected error while validating token")
            return False

    def logout(self, refresh_token: str) -> bool:
        """Revoke the ledger record of a refresh token.

        Returns True if a live record was revoked. Invalid, unknown and
        already-revoked tokens all return False.
        """
        verified = self.signer.verify(refresh_token)
        if verified is None or not is_refresh(verified):
            return False
        token_hash = hash_refresh_token(refresh_token, self._token_hash_key)
        with self._guard("logout"):
            revoked = self.ledger.revoke(token_hash)
        if revoked:
            logger.debug("Refresh token revoked for user %s", verified.subject)
        return revoked

    def logout_all(self, user_id: str) -> int:
        """Revoke every live refresh token of a user. Returns how many were revoked."""
        user_id = normalize_user_id(user_id)
        with self._guard("logout_all"):
            revoked = self.ledger.revoke_all_for_user(user_id)
        logger.info("Revoked %d refresh token(s) for user %s", revoked, user_id)
        return revoked

    def delete_user(self, user_id: str) -> bool:
        """Remove a user and their ledger records. False if the user did not exist."""
        user_id = normalize_user_id(user_id)
        logger.debug("Deleting user %s", user_id)
        with self._guard("delete_user"):
            deleted = self.users.delete_user(user_id)
        if deleted:
            logger.info("User %s deleted", user_id)
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mint_pair(self, user: User) -> TokenPair:
        """Issue access + refresh tokens and record the refresh token's hash.

        The only code path that writes to the ledger.
        """
        with self._guard("mint_pair"):
            access = self.signer.issue_access_token(user.id, {"role": user.role}, self.access_ttl)
            refresh = self.signer.issue_refresh_token(user.id, self.refresh_ttl)
            expires_at = self.signer.expires_at(refresh)
            if expires_at is None:
                raise InternalError("Freshly issued refresh token did not verify.")
            self.ledger.record(hash_refresh_token(refresh, self._token_hash_key), user.id, expires_at)
        return TokenPair(access_token=access, refresh_token=refresh, expires_in=self.access_ttl)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate storage and signing failures into InternalError."""
        try:
            yield
        except (SQLAlchemyError, JWTError) as exc:
            logger.exception("%s failed", operation)
            raise InternalError() from exc
