"""
fleet/models.py -- Domain dataclasses for groups, robots, grants and settings.

These are pure data containers with zero logic. Access decisions live in
fleet/access.py; persistence lives in fleet/store.py.

id is None before the record is written to the database. Timestamps are
ISO 8601 UTC strings set by the store on write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

OWNER_USER = "user"
OWNER_GROUP = "group"
OWNER_TYPES = (OWNER_USER, OWNER_GROUP)

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
GROUP_ROLES = (ROLE_ADMIN, ROLE_MEMBER)

GRANT_USAGE = "usage"
GRANT_ADMIN = "admin"
GRANT_TYPES = (GRANT_USAGE, GRANT_ADMIN)

# Computed permission levels, highest first.
LEVEL_OWNER = "owner"
LEVEL_ADMIN = "admin"
LEVEL_USAGE = "usage"
LEVEL_NONE = "none"


@dataclass
class Group:
    name: str
    created_by: int
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class GroupMembership:
    """A (group, user) pair. Unique per pair; re-adding overwrites role."""

    group_id: int
    user_id: int
    role: str  # "admin" | "member"
    id: Optional[int] = None


@dataclass
class Robot:
    """A robot and its owner.

    Exactly one of owner_user_id / owner_group_id is set, matching owner_type.
    The store rejects rows that break this on read.
    """

    serial_number: str
    name: str
    owner_type: str  # "user" | "group"
    owner_user_id: Optional[int] = None
    owner_group_id: Optional[int] = None
    model: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class RobotPermission:
    """An explicit grant. The only way a non-owner gains access to a robot."""

    user_id: int
    robot_id: int
    permission_type: str  # "usage" | "admin"
    granted_by: int
    id: Optional[int] = None
    granted_at: str = ""


@dataclass
class RobotSettings:
    """One user's private settings document for one robot."""

    user_id: int
    robot_id: int
    settings: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    updated_at: str = ""
