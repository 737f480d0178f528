"""
fleet/access.py -- Pure authorization decisions for the robot fleet.

No I/O. No logging. Every function works on plain data the caller fetched
beforehand (a Robot, membership rows, grant rows), so each rule can be tested
without a database. fleet/service.py gathers the facts and calls these.

Decisions:
  resolve_owner / resolve_new_ownership   -- who owns a robot
  group_role / is_group_admin             -- a user's role in a group
  find_grant                              -- a user's explicit grant on a robot
  permission_level                        -- owner | admin | usage | none
  has_management_standing                 -- may grant/revoke/list grants
  can_modify_settings                     -- may save own settings
  check_assignment                        -- may attach a group robot to a member

Precedence in permission_level:
  1. user-owned robot whose owner is the caller  -> owner (never overridden)
  2. explicit grant                              -> the grant's type
  3. owning-group member, only when the policy
     flag membership_implies_usage is on         -> usage
  4. otherwise                                   -> none

Standing is asymmetric on purpose: group admins may manage grants on their
group's robots without holding a grant, but saving settings requires ownership
or an explicit grant of either type.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from core.errors import AuthorizationError, ValidationError
from fleet.models import (
    GRANT_ADMIN,
    GRANT_TYPES,
    GRANT_USAGE,
    LEVEL_ADMIN,
    LEVEL_NONE,
    LEVEL_OWNER,
    LEVEL_USAGE,
    OWNER_GROUP,
    OWNER_TYPES,
    OWNER_USER,
    ROLE_ADMIN,
    GroupMembership,
    Robot,
    RobotPermission,
)


@dataclass(frozen=True)
class AccessFacts:
    """Everything the combinator needs to know about one (user, robot) pair.

    grant      -- the caller's explicit permission_type on the robot, or None.
    group_role -- the caller's role in the robot's owning group, or None when
                  the robot is user-owned or the caller is not a member.
    """

    user_id: int
    robot: Robot
    grant: Optional[str] = None
    group_role: Optional[str] = None


# ---------------------------------------------------------------------------
# Ownership resolver
# ---------------------------------------------------------------------------


def resolve_owner(robot: Robot) -> tuple[str, int]:
    """Return (owner_type, owner_id) for a robot.

    Raises ValueError if the row breaks the exactly-one-owner invariant.
    """
    if robot.owner_type == OWNER_USER and robot.owner_user_id is not None and robot.owner_group_id is None:
        return OWNER_USER, robot.owner_user_id
    if robot.owner_type == OWNER_GROUP and robot.owner_group_id is not None and robot.owner_user_id is None:
        return OWNER_GROUP, robot.owner_group_id
    raise ValueError(f"Robot {robot.serial_number!r} has inconsistent ownership")


def resolve_new_ownership(
    owner_type: str,
    creator_id: int,
    owner_group_id: Optional[int],
) -> tuple[Optional[int], Optional[int]]:
    """Return the (owner_user_id, owner_group_id) pair to persist for a new robot.

    A personal robot belongs to its creator; any group id supplied alongside
    is ignored. A group robot needs a group id. Whether the creator may create
    robots for that group is checked separately (group-admin gate).
    """
    if owner_type not in OWNER_TYPES:
        raise ValidationError('Invalid owner_type. Expected "user" or "group".')
    if owner_type == OWNER_USER:
        return creator_id, None
    if not owner_group_id:
        raise ValidationError("Group ID is required for group-owned robots")
    return None, owner_group_id


# ---------------------------------------------------------------------------
# Group-role resolver
# ---------------------------------------------------------------------------


def group_role(memberships: Iterable[GroupMembership], user_id: int, group_id: int) -> Optional[str]:
    """Return user_id's role in group_id, or None if not a member."""
    for m in memberships:
        if m.group_id == group_id and m.user_id == user_id:
            return m.role
    return None


def is_group_admin(role: Optional[str]) -> bool:
    return role == ROLE_ADMIN


def require_group_admin(role: Optional[str], message: str) -> None:
    """Raise AuthorizationError(message) unless role is admin."""
    if not is_group_admin(role):
        raise AuthorizationError(message)


# ---------------------------------------------------------------------------
# Permission-grant resolver
# ---------------------------------------------------------------------------


def find_grant(grants: Iterable[RobotPermission], user_id: int, robot_id: int) -> Optional[str]:
    """Return the permission_type user_id holds on robot_id, or None."""
    for g in grants:
        if g.user_id == user_id and g.robot_id == robot_id:
            return g.permission_type
    return None


def validate_grant_type(permission_type: str) -> str:
    if permission_type not in GRANT_TYPES:
        raise ValidationError('Invalid permission_type. Expected "usage" or "admin".')
    return permission_type


# ---------------------------------------------------------------------------
# Access decision combinator
# ---------------------------------------------------------------------------


def is_owner(facts: AccessFacts) -> bool:
    robot = facts.robot
    return robot.owner_type == OWNER_USER and robot.owner_user_id == facts.user_id


def permission_level(facts: AccessFacts, membership_implies_usage: bool = False) -> str:
    """Classify the caller's access to the robot. See module docstring for precedence."""
    if is_owner(facts):
        return LEVEL_OWNER
    if facts.grant == GRANT_ADMIN:
        return LEVEL_ADMIN
    if facts.grant == GRANT_USAGE:
        return LEVEL_USAGE
    if membership_implies_usage and facts.robot.owner_type == OWNER_GROUP and facts.group_role is not None:
        return LEVEL_USAGE
    return LEVEL_NONE


def ownership_type(facts: AccessFacts) -> str:
    """Label how the caller relates to the robot's owner.

    personal -- the caller owns it
    group    -- a group owns it
    shared   -- another user's personal robot, reached through a grant
    """
    if is_owner(facts):
        return "personal"
    if facts.robot.owner_type == OWNER_GROUP:
        return "group"
    return "shared"


def has_management_standing(facts: AccessFacts) -> bool:
    """Owner, admin of the owning group, or holder of an explicit admin grant."""
    if is_owner(facts):
        return True
    if facts.robot.owner_type == OWNER_GROUP and is_group_admin(facts.group_role):
        return True
    return facts.grant == GRANT_ADMIN


def can_modify_settings(facts: AccessFacts) -> bool:
    """Owner, or holder of any explicit grant. Group admin alone is not enough."""
    return is_owner(facts) or facts.grant in GRANT_TYPES


def check_assignment(robot: Robot, caller_role: Optional[str]) -> None:
    """Gate attaching a group-owned robot to a member.

    caller_role is the caller's role in the robot's owning group.
    """
    if robot.owner_type != OWNER_GROUP or robot.owner_group_id is None:
        raise ValidationError("Only group-owned robots can be assigned")
    require_group_admin(caller_role, "Only group admins can assign robots")
