"""
api/routes/v1/users.py -- The caller's own profile.

Routes:
  GET /api/v1/users/me   -- id, name, email, created_at (requires auth)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import UserResponse
from auth.dependencies import get_current_user
from auth.models import User

router = APIRouter()


@router.get("/users/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(current_user)
