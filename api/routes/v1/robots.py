"""
api/routes/v1/robots.py -- Robots, grants and assignment.

Routes:
  POST   /api/v1/robots                                   -- register a robot
  GET    /api/v1/robots                                   -- robots the caller can access
  GET    /api/v1/robots/{serial_number}                   -- 404 unknown, 403 no access
  GET    /api/v1/robots/{serial_number}/permissions       -- grants (management standing)
  POST   /api/v1/robots/{robot_id}/permissions            -- grant (management standing)
  DELETE /api/v1/robots/{robot_id}/permissions/{user_id}  -- revoke (management standing)
  POST   /api/v1/robots/{robot_id}/assign                 -- group admin attaches a group robot

Reads address a robot by serial number; writes address it by numeric id.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, Response

from api.models import (
    MAX_DB_ID,
    PermissionGrant,
    PermissionResponse,
    PermissionRow,
    RobotAccessResponse,
    RobotAssign,
    RobotCreate,
    RobotResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from fleet.service import FleetService

# Auth policy:
# - every route requires auth (get_current_user)
# - ownership, grant and group-role checks happen in FleetService
router = APIRouter()

PathId = Annotated[int, Path(ge=1, le=MAX_DB_ID)]


def _email(value: str | None) -> str | None:
    return value.lower() if value else None


# ---------------------------------------------------------------------------
# Robots
# ---------------------------------------------------------------------------


@router.post("/robots", status_code=201, response_model=RobotResponse)
def create_robot(
    request: Request,
    body: RobotCreate,
    current_user: User = Depends(get_current_user),
) -> RobotResponse:
    fleet: FleetService = request.app.state.fleet
    robot = fleet.create_robot(
        current_user.id,
        serial_number=body.serial_number,
        name=body.name,
        owner_type=body.owner_type.value,
        model=body.model,
        owner_group_id=body.owner_group_id,
    )
    return RobotResponse.from_robot(robot)


@router.get("/robots", response_model=list[RobotAccessResponse])
def list_robots(request: Request, current_user: User = Depends(get_current_user)) -> list[RobotAccessResponse]:
    fleet: FleetService = request.app.state.fleet
    return [RobotAccessResponse.from_view(view) for view in fleet.list_robots(current_user.id)]


@router.get("/robots/{serial_number}", response_model=RobotAccessResponse)
def get_robot(
    request: Request,
    serial_number: str,
    current_user: User = Depends(get_current_user),
) -> RobotAccessResponse:
    fleet: FleetService = request.app.state.fleet
    return RobotAccessResponse.from_view(fleet.get_robot(current_user.id, serial_number))


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


@router.get("/robots/{serial_number}/permissions", response_model=list[PermissionRow])
def list_permissions(
    request: Request,
    serial_number: str,
    current_user: User = Depends(get_current_user),
) -> list[PermissionRow]:
    fleet: FleetService = request.app.state.fleet
    return [PermissionRow(**row) for row in fleet.list_permissions(current_user.id, serial_number)]


@router.post("/robots/{robot_id}/permissions", response_model=PermissionResponse)
def grant_permission(
    request: Request,
    robot_id: PathId,
    body: PermissionGrant,
    current_user: User = Depends(get_current_user),
) -> PermissionResponse:
    """Grant usage or admin on a robot. Re-granting replaces the previous type."""
    fleet: FleetService = request.app.state.fleet
    grant = fleet.grant_permission(
        current_user.id,
        robot_id,
        body.permission_type.value,
        target_user_id=body.user_id,
        target_email=_email(body.user_email),
    )
    return PermissionResponse.from_permission(grant)


@router.delete("/robots/{robot_id}/permissions/{user_id}", status_code=204)
def revoke_permission(
    request: Request,
    robot_id: PathId,
    user_id: PathId,
    current_user: User = Depends(get_current_user),
) -> Response:
    fleet: FleetService = request.app.state.fleet
    fleet.revoke_permission(current_user.id, robot_id, user_id)
    return Response(status_code=204)


@router.post("/robots/{robot_id}/assign", response_model=PermissionResponse)
def assign_robot(
    request: Request,
    robot_id: PathId,
    body: RobotAssign,
    current_user: User = Depends(get_current_user),
) -> PermissionResponse:
    fleet: FleetService = request.app.state.fleet
    grant = fleet.assign_robot(
        current_user.id,
        robot_id,
        target_user_id=body.user_id,
        target_email=_email(body.user_email),
        permission_type=body.permission_type.value,
    )
    return PermissionResponse.from_permission(grant)
