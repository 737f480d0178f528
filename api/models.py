"""
API request and response models for the RoboFleet REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
fleet/models.py, which own the internal domain representation. Route handlers
map between the two with the from_* factory methods below.

Separation of concerns: fleet/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from fleet.models import Group, Robot, RobotPermission, RobotSettings

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OwnerTypeEnum(str, Enum):
    user = "user"
    group = "group"


class GroupRoleEnum(str, Enum):
    admin = "admin"
    member = "member"


class PermissionTypeEnum(str, Enum):
    usage = "usage"
    admin = "admin"


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# bcrypt reads at most 72 bytes of input; longer passwords are rejected, not truncated.
BCRYPT_MAX_BYTES = 72

# Largest id SQLite (and BIGINT columns elsewhere) can bind.
MAX_DB_ID = 2**63 - 1

# Annotated id type for request bodies. Path parameters use the same bounds.
DbId = Annotated[int, Field(ge=1, le=MAX_DB_ID)]


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded.")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    The password limit is measured in UTF-8 bytes, not characters, because
    that is what bcrypt counts.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=BCRYPT_MAX_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=BCRYPT_MAX_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserResponse(BaseModel):
    """Public user profile. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


class AuthResponse(BaseModel):
    """Response for register and login: the profile plus a bearer token."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class GroupCreate(BaseModel):
    """Request body for POST /api/v1/groups."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)


class GroupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_by: int
    created_at: str

    @classmethod
    def from_group(cls, group: Group) -> "GroupResponse":
        return cls(id=group.id, name=group.name, created_by=group.created_by, created_at=group.created_at)


class GroupSummaryRow(BaseModel):
    """One row in GET /groups: a group the caller belongs to and the caller's role."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    created_at: str
    role: GroupRoleEnum


class MemberUpsert(BaseModel):
    """Request body for POST /api/v1/groups/{group_id}/members.

    Identify the user by user_id or user_email. user_id wins when both are set.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: Optional[DbId] = None
    user_email: Optional[str] = Field(default=None, max_length=255)
    role: GroupRoleEnum = GroupRoleEnum.member


class MemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    name: str
    email: str
    role: GroupRoleEnum


# ---------------------------------------------------------------------------
# Robots
# ---------------------------------------------------------------------------


class RobotCreate(BaseModel):
    """Request body for POST /api/v1/robots.

    owner_group_id is required when owner_type is "group" and ignored when it
    is "user". That rule is enforced by fleet/access.py so the message matches
    the other entry points.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    serial_number: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    model: Optional[str] = Field(default=None, max_length=255)
    owner_type: OwnerTypeEnum
    owner_group_id: Optional[DbId] = None


class RobotResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    serial_number: str
    name: str
    model: Optional[str]
    owner_type: OwnerTypeEnum
    owner_user_id: Optional[int]
    owner_group_id: Optional[int]
    created_at: str

    @classmethod
    def from_robot(cls, robot: Robot) -> "RobotResponse":
        return cls(
            id=robot.id,
            serial_number=robot.serial_number,
            name=robot.name,
            model=robot.model,
            owner_type=robot.owner_type,
            owner_user_id=robot.owner_user_id,
            owner_group_id=robot.owner_group_id,
            created_at=robot.created_at,
        )


class RobotAccessResponse(RobotResponse):
    """A robot annotated with how the caller may access it."""

    permission_level: str
    ownership_type: str
    is_group_admin: bool = False

    @classmethod
    def from_view(cls, view) -> "RobotAccessResponse":
        base = RobotResponse.from_robot(view.robot).model_dump()
        return cls(
            **base,
            permission_level=view.permission_level,
            ownership_type=view.ownership_type,
            is_group_admin=view.is_group_admin,
        )


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


class PermissionGrant(BaseModel):
    """Request body for POST /api/v1/robots/{robot_id}/permissions."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: Optional[DbId] = None
    user_email: Optional[str] = Field(default=None, max_length=255)
    permission_type: PermissionTypeEnum


class RobotAssign(BaseModel):
    """Request body for POST /api/v1/robots/{robot_id}/assign. Defaults to usage."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: Optional[DbId] = None
    user_email: Optional[str] = Field(default=None, max_length=255)
    permission_type: PermissionTypeEnum = PermissionTypeEnum.usage


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    robot_id: int
    permission_type: PermissionTypeEnum
    granted_by: int
    granted_at: str

    @classmethod
    def from_permission(cls, grant: RobotPermission) -> "PermissionResponse":
        return cls(
            id=grant.id,
            user_id=grant.user_id,
            robot_id=grant.robot_id,
            permission_type=grant.permission_type,
            granted_by=grant.granted_by,
            granted_at=grant.granted_at,
        )


class PermissionRow(BaseModel):
    """One row in GET /robots/{serial_number}/permissions."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    name: str
    email: str
    permission_type: PermissionTypeEnum
    granted_by: int
    granted_at: str


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingsSave(BaseModel):
    """Request body for POST /api/v1/settings/{serial_number}.

    settings is typed Any so a non-object payload reaches the service and is
    rejected there with the same message every caller sees.
    """

    settings: Any


class SettingsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    robot_id: int
    settings: dict[str, Any]
    updated_at: str

    @classmethod
    def from_settings(cls, row: RobotSettings) -> "SettingsResponse":
        return cls(user_id=row.user_id, robot_id=row.robot_id, settings=row.settings, updated_at=row.updated_at)


class SettingsSummaryRow(BaseModel):
    """One row in GET /settings: a stored document plus the robot it belongs to."""

    model_config = ConfigDict(frozen=True)

    robot_id: int
    serial_number: str
    name: str
    settings: dict[str, Any]
    updated_at: str


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
