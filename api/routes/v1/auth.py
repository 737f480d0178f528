"""
api/routes/v1/auth.py -- Registration and login.

Routes:
  POST /api/v1/auth/register   -- create an account; 201 {user, token}
  POST /api/v1/auth/login      -- email + password; 200 {user, token}

Security:
  authenticate_user() provides timing equalization -- use it, never inline.
  Unknown email and wrong password return the same 401 body.
  Cache-Control: no-store on both responses, which carry a bearer token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import AuthResponse, ErrorDetail, ErrorResponse, LoginRequest, RegisterRequest, UserResponse
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.errors import ConflictError

logger = logging.getLogger("robofleet.auth")

# Auth policy:
# - POST /api/v1/auth/register: public -- account creation
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
router = APIRouter()


def _token_response(user: User, status_code: int) -> JSONResponse:
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(user=UserResponse.from_user(user), token=token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", status_code=201, response_model=AuthResponse)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user and return it with a fresh token. 409 if the email is taken."""
    user_store: UserStore = request.app.state.user_store
    email = body.email.lower()
    try:
        uid = user_store.create_user(User(name=body.name, email=email, hashed_password=hash_password(body.password)))
    except IntegrityError as exc:
        raise ConflictError("User already exists") from exc

    user = user_store.get_by_id(uid)
    logger.info("User registered: id=%d", uid)
    return _token_response(user, 201)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Uses authenticate_user() which includes timing equalization. Do NOT
    inline get_by_email() + verify_password().
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email.lower(), body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(error=ErrorDetail(code="unauthorized", message="Invalid credentials")).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _token_response(user, 200)
