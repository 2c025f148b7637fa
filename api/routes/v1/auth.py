"""
api/routes/v1/auth.py -- Credential and token lifecycle REST endpoints.

Routes:
  POST   /api/v1/auth/credentials       -- register email + password for a user id
  POST   /api/v1/auth/login             -- password login; returns a token pair
  POST   /api/v1/auth/refresh           -- exchange a refresh token for a new pair
  POST   /api/v1/auth/validate          -- is this a valid access token?
  POST   /api/v1/auth/logout            -- revoke a refresh token
  POST   /api/v1/auth/logout-all        -- revoke all of the caller's refresh tokens (access token)
  DELETE /api/v1/auth/users/{user_id}   -- delete a user and their refresh tokens (admin only)

Routes are plain `def` so FastAPI runs them in its threadpool: bcrypt and
the SQL round trips block, and must not stall the event loop.

Errors: handlers let auth.errors.AuthError propagate; api/main.py maps each
ErrorKind to a status code and the uniform error envelope.

Security:
  POST /login and POST /refresh are rate-limited per IP.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    CredentialsCreate,
    CredentialsResponse,
    DeleteUserResponse,
    LoginRequest,
    LogoutAllResponse,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    TokenResponse,
    ValidateRequest,
    ValidateResponse,
)
from auth.dependencies import get_current_token, require_admin
from auth.models import TokenPair, VerifiedToken
from auth.service import AuthService
from core.config import get_settings

# Read once at import -- slowapi needs the limit string when the decorator runs.
_AUTH_RATE_LIMIT = get_settings().login_rate_limit

# Auth policy:
# - POST   /api/v1/auth/credentials:      public -- registration
# - POST   /api/v1/auth/login:            public, rate-limited
# - POST   /api/v1/auth/refresh:          public (the refresh token is the credential), rate-limited
# - POST   /api/v1/auth/validate:         public -- other services call this to check access tokens
# - POST   /api/v1/auth/logout:           public (the refresh token is the credential)
# - POST   /api/v1/auth/logout-all:       requires an access token (get_current_token)
# - DELETE /api/v1/auth/users/{user_id}:  requires admin (require_admin)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _token_response(pair: TokenPair) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=TokenResponse.from_pair(pair).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/credentials", response_model=CredentialsResponse, status_code=201)
def save_credentials(request: Request, body: CredentialsCreate) -> CredentialsResponse:
    """Register credentials for a user id. 409 if the id or email is taken."""
    summary = _service(request).register(body.id, body.email, body.password)
    return CredentialsResponse.from_summary(summary)


@limiter.limit(_AUTH_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=TokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return an access + refresh token pair.

    Wrong email and wrong password produce the same 401 body.
    """
    return _token_response(_service(request).login(body.email, body.password))


@limiter.limit(_AUTH_RATE_LIMIT)
@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stays valid until it expires."""
    return _token_response(_service(request).refresh(body.refresh_token))


@router.post("/auth/validate", response_model=ValidateResponse)
def validate(request: Request, body: ValidateRequest) -> ValidateResponse:
    """Return valid=true only for a verified access token. Refresh tokens are never valid here."""
    return ValidateResponse(valid=_service(request).validate(body.token))


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, body: LogoutRequest) -> LogoutResponse:
    """Revoke a refresh token. Always 200 -- the response does not reveal whether it was live."""
    _service(request).logout(body.refresh_token)
    return LogoutResponse()


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(
    request: Request,
    current: VerifiedToken = Depends(get_current_token),
) -> LogoutAllResponse:
    """Revoke every refresh token the caller holds. Outstanding access tokens run to their expiry."""
    return LogoutAllResponse(revoked=_service(request).logout_all(current.subject))


# ---------------------------------------------------------------------------
# Administrative endpoints
# ---------------------------------------------------------------------------


@router.delete("/auth/users/{user_id}", response_model=DeleteUserResponse)
def delete_user(
    request: Request,
    user_id: str,
    current: VerifiedToken = Depends(require_admin),
) -> DeleteUserResponse:
    """Delete a user and every refresh token they hold. deleted=false if the id was unknown."""
    return DeleteUserResponse(deleted=_service(request).delete_user(user_id))
