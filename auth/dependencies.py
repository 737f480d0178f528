"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an `Authorization: Bearer <token>` header carrying
a JWT issued by /auth/register or /auth/login.

Failure split:
  no Authorization header / not a Bearer value   -> AuthenticationError 401
  token present but malformed, expired, or for a
  user that no longer exists                     -> AuthenticationError 403

The resolved User is the request's principal. Routes pass `current_user.id`
explicitly into every service call; nothing downstream reads it from the
request or from module state.

Layer rule: no imports from api/ or fleet/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import User
from auth.tokens import decode_access_token
from core.errors import AuthenticationError


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> User:
    """Require authentication and return the acting user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(current_user: User = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise AuthenticationError()

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError.invalid_token()

    user = request.app.state.user_store.get_by_id(payload["user_id"])
    if user is None:
        raise AuthenticationError.invalid_token()
    return user
