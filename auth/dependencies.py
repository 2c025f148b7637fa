"""
auth/dependencies.py -- FastAPI Depends() helpers for authenticated routes.

Only access tokens authenticate a request: a refresh token presented as a
Bearer credential is rejected exactly like a forged one.

try_get_current_token() is the soft variant (returns None on failure).
get_current_token() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_token() and raises HTTP 403 if the role
claim is not the configured admin role.

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because it is part of the FastAPI dependency
injection system. It reads its collaborators from request.app.state.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import VerifiedToken
from auth.tokens import TokenSigner, is_access


def try_get_current_token(request: Request) -> VerifiedToken | None:
    """Verify the Authorization: Bearer access token. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    signer: TokenSigner = request.app.state.signer
    verified = signer.verify(auth_header[7:])
    if verified is None or not is_access(verified):
        return None
    return verified


def get_current_token(request: Request) -> VerifiedToken:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(token: VerifiedToken = Depends(get_current_token)): ...
    """
    verified = try_get_current_token(request)
    if verified is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return verified


def require_admin(request: Request) -> VerifiedToken:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    verified = get_current_token(request)
    if verified.claims.get("role") != request.app.state.admin_role:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return verified
