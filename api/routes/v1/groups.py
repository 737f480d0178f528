"""
api/routes/v1/groups.py -- Groups and their members.

Routes:
  GET    /api/v1/groups                               -- caller's groups with role
  POST   /api/v1/groups                               -- create; caller becomes admin
  GET    /api/v1/groups/{group_id}/members            -- members only
  POST   /api/v1/groups/{group_id}/members            -- invite or change role (group admin)
  DELETE /api/v1/groups/{group_id}/members/{user_id}  -- remove (group admin)

Handlers stay thin: each one passes current_user.id into FleetService, which
owns every existence and standing check.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, Response

from api.models import MAX_DB_ID, GroupCreate, GroupResponse, GroupSummaryRow, MemberResponse, MemberUpsert
from auth.dependencies import get_current_user
from auth.models import User
from fleet.service import FleetService

# Auth policy:
# - every route requires auth (get_current_user)
# - membership and admin checks happen in FleetService
router = APIRouter()

PathId = Annotated[int, Path(ge=1, le=MAX_DB_ID)]


@router.get("/groups", response_model=list[GroupSummaryRow])
def list_groups(request: Request, current_user: User = Depends(get_current_user)) -> list[GroupSummaryRow]:
    fleet: FleetService = request.app.state.fleet
    return [GroupSummaryRow(**row) for row in fleet.list_groups(current_user.id)]


@router.post("/groups", status_code=201, response_model=GroupResponse)
def create_group(
    request: Request,
    body: GroupCreate,
    current_user: User = Depends(get_current_user),
) -> GroupResponse:
    fleet: FleetService = request.app.state.fleet
    return GroupResponse.from_group(fleet.create_group(current_user.id, body.name))


@router.get("/groups/{group_id}/members", response_model=list[MemberResponse])
def list_members(
    request: Request,
    group_id: PathId,
    current_user: User = Depends(get_current_user),
) -> list[MemberResponse]:
    fleet: FleetService = request.app.state.fleet
    return [MemberResponse(**row) for row in fleet.list_group_members(current_user.id, group_id)]


@router.post("/groups/{group_id}/members", response_model=MemberResponse)
def upsert_member(
    request: Request,
    group_id: PathId,
    body: MemberUpsert,
    current_user: User = Depends(get_current_user),
) -> MemberResponse:
    """Add a user to the group, or update the role of an existing member."""
    fleet: FleetService = request.app.state.fleet
    member = fleet.upsert_group_member(
        current_user.id,
        group_id,
        body.role.value,
        target_user_id=body.user_id,
        target_email=body.user_email.lower() if body.user_email else None,
    )
    return MemberResponse(**member)


@router.delete("/groups/{group_id}/members/{user_id}", status_code=204)
def remove_member(
    request: Request,
    group_id: PathId,
    user_id: PathId,
    current_user: User = Depends(get_current_user),
) -> Response:
    fleet: FleetService = request.app.state.fleet
    fleet.remove_group_member(current_user.id, group_id, user_id)
    return Response(status_code=204)
