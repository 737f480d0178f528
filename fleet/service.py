"""
fleet/service.py -- Group, robot, grant and settings operations.

Each public method takes the acting user's id as its first argument. There is
no ambient "current user": routes pass the authenticated principal in, the CLI
passes whatever user it was asked about.

Flow for every robot operation:
  1. load the plain facts (robot, caller's grant, caller's group role)
  2. ask fleet/access.py for a decision
  3. raise a core.errors exception or perform the write

Existence is always checked before standing, so an unknown robot is a 404
even for a caller who would not be allowed to touch it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from auth.store import UserStore
from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from fleet import access
from fleet.access import AccessFacts
from fleet.models import (
    GRANT_USAGE,
    GROUP_ROLES,
    LEVEL_NONE,
    OWNER_GROUP,
    Group,
    Robot,
    RobotPermission,
    RobotSettings,
)
from fleet.store import FleetStore

logger = logging.getLogger("robofleet.fleet")


@dataclass
class RobotView:
    """A robot as seen by one user."""

    robot: Robot
    permission_level: str
    ownership_type: str
    is_group_admin: bool = False


class FleetService:
    def __init__(self, store: FleetStore, user_store: UserStore, membership_implies_usage: bool = False) -> None:
        self.store = store
        self.user_store = user_store
        self.membership_implies_usage = membership_implies_usage

    # ------------------------------------------------------------------
    # Fact gathering
    # ------------------------------------------------------------------

    def _facts(self, user_id: int, robot: Robot) -> AccessFacts:
        grant = self.store.get_grant(user_id, robot.id)
        role = None
        if robot.owner_type == OWNER_GROUP:
            membership = self.store.get_membership(robot.owner_group_id, user_id)
            role = membership.role if membership else None
        return AccessFacts(
            user_id=user_id,
            robot=robot,
            grant=grant.permission_type if grant else None,
            group_role=role,
        )

    def _robot_by_id(self, robot_id: int) -> Robot:
        robot = self.store.get_robot(robot_id)
        if robot is None:
            raise NotFoundError("Robot not found")
        return robot

    def _robot_by_serial(self, serial_number: str) -> Robot:
        robot = self.store.get_robot_by_serial(serial_number)
        if robot is None:
            raise NotFoundError("Robot not found")
        return robot

    def _group(self, group_id: int) -> Group:
        group = self.store.get_group(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    def _caller_role(self, user_id: int, group_id: int) -> Optional[str]:
        membership = self.store.get_membership(group_id, user_id)
        return membership.role if membership else None

    def _require_management(self, facts: AccessFacts) -> None:
        if not access.has_management_standing(facts):
            logger.info(
                "Denied permission management: user=%d robot=%s",
                facts.user_id,
                facts.robot.serial_number,
            )
            raise AuthorizationError("Insufficient permissions")

    def resolve_user(self, user_id: Optional[int] = None, user_email: Optional[str] = None) -> int:
        """Resolve a target user by id or email. user_id wins when both are given."""
        if user_id is not None:
            if self.user_store.get_by_id(user_id) is None:
                raise NotFoundError("User not found")
            return user_id
        if user_email:
            user = self.user_store.get_by_email(user_email)
            if user is None:
                raise NotFoundError("User with provided email not found")
            return user.id
        raise ValidationError("User identifier is required")

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def list_groups(self, user_id: int) -> list[dict]:
        return self.store.list_groups_for_user(user_id)

    def create_group(self, user_id: int, name: str) -> Group:
        """Create a group with the caller as its first admin."""
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        group_id = self.store.create_group(Group(name=name.strip(), created_by=user_id))
        logger.info("Group created: id=%d by user=%d", group_id, user_id)
        return self._group(group_id)

    def list_group_members(self, user_id: int, group_id: int) -> list[dict]:
        """Members of a group. Only members of that group may look."""
        self._group(group_id)
        if self._caller_role(user_id, group_id) is None:
            raise AuthorizationError("Only group members can view members")
        return self.store.list_members(group_id)

    def upsert_group_member(
        self,
        user_id: int,
        group_id: int,
        role: str,
        target_user_id: Optional[int] = None,
        target_email: Optional[str] = None,
    ) -> dict:
        """Invite a user into the group or change an existing member's role."""
        if role not in GROUP_ROLES:
            raise ValidationError('Invalid role. Expected "admin" or "member".')
        self._group(group_id)
        access.require_group_admin(self._caller_role(user_id, group_id), "Only group admins can manage members")
        target_id = self.resolve_user(target_user_id, target_email)

        membership = self.store.upsert_member(group_id, target_id, role)
        target = self.user_store.get_by_id(target_id)
        logger.info("Group member set: group=%d user=%d role=%s by user=%d", group_id, target_id, role, user_id)
        return {
            "user_id": membership.user_id,
            "role": membership.role,
            "name": target.name if target else "",
            "email": target.email if target else "",
        }

    def remove_group_member(self, user_id: int, group_id: int, target_user_id: int) -> None:
        """Remove a member. Their explicit robot grants stay in place."""
        self._group(group_id)
        access.require_group_admin(self._caller_role(user_id, group_id), "Only group admins can remove members")
        if not self.store.remove_member(group_id, target_user_id):
            raise NotFoundError("Member not found")
        logger.info("Group member removed: group=%d user=%d by user=%d", group_id, target_user_id, user_id)

    # ------------------------------------------------------------------
    # Robots
    # ------------------------------------------------------------------

    def create_robot(
        self,
        user_id: int,
        serial_number: str,
        name: str,
        owner_type: str,
        model: Optional[str] = None,
        owner_group_id: Optional[int] = None,
    ) -> Robot:
        """Register a robot owned by the caller or by a group the caller administers."""
        if not serial_number or not name or not owner_type:
            raise ValidationError("Serial number, name, and owner_type are required")
        owner_user_id, group_id = access.resolve_new_ownership(owner_type, user_id, owner_group_id)
        if group_id is not None:
            self._group(group_id)
            access.require_group_admin(
                self._caller_role(user_id, group_id),
                "Only group admins can create group-owned robots",
            )

        robot = Robot(
            serial_number=serial_number,
            name=name,
            model=model,
            owner_type=owner_type,
            owner_user_id=owner_user_id,
            owner_group_id=group_id,
        )
        try:
            robot_id = self.store.create_robot(robot)
        except IntegrityError as exc:
            raise ConflictError("Serial number already exists") from exc
        logger.info("Robot created: serial=%s owner_type=%s by user=%d", serial_number, owner_type, user_id)
        return self._robot_by_id(robot_id)

    def list_robots(self, user_id: int) -> list[RobotView]:
        """Robots the caller can access, newest first, each annotated with its level.

        Candidates (owned, owning-group member, or granted) are classified by
        the same combinator the detail view uses; candidates that come out as
        "none" are dropped so the list never offers a robot get_robot refuses.
        """
        grants = self.store.grants_for_user(user_id)
        memberships = self.store.memberships_for_user(user_id)
        views: list[RobotView] = []
        for robot in self.store.list_candidate_robots(user_id):
            role = None
            if robot.owner_type == OWNER_GROUP:
                role = access.group_role(memberships, user_id, robot.owner_group_id)
            facts = AccessFacts(
                user_id=user_id,
                robot=robot,
                grant=access.find_grant(grants, user_id, robot.id),
                group_role=role,
            )
            level = access.permission_level(facts, self.membership_implies_usage)
            if level == LEVEL_NONE:
                continue
            views.append(
                RobotView(
                    robot=robot,
                    permission_level=level,
                    ownership_type=access.ownership_type(facts),
                    is_group_admin=access.is_group_admin(role),
                )
            )
        return views

    def get_robot(self, user_id: int, serial_number: str) -> RobotView:
        """Fetch one robot. 404 if the serial is unknown, 403 if the caller has no access."""
        robot = self._robot_by_serial(serial_number)
        facts = self._facts(user_id, robot)
        level = access.permission_level(facts, self.membership_implies_usage)
        if level == LEVEL_NONE:
            logger.info("Denied robot read: user=%d robot=%s", user_id, serial_number)
            raise AuthorizationError("Insufficient permissions")
        return RobotView(
            robot=robot,
            permission_level=level,
            ownership_type=access.ownership_type(facts),
            is_group_admin=access.is_group_admin(facts.group_role),
        )

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def grant_permission(
        self,
        user_id: int,
        robot_id: int,
        permission_type: str,
        target_user_id: Optional[int] = None,
        target_email: Optional[str] = None,
    ) -> RobotPermission:
        """Grant or re-grant access on a robot. Requires management standing."""
        access.validate_grant_type(permission_type)
        robot = self._robot_by_id(robot_id)
        self._require_management(self._facts(user_id, robot))
        target_id = self.resolve_user(target_user_id, target_email)

        grant = self.store.upsert_grant(
            RobotPermission(user_id=target_id, robot_id=robot.id, permission_type=permission_type, granted_by=user_id)
        )
        logger.info(
            "Permission granted: robot=%s user=%d type=%s by user=%d",
            robot.serial_number,
            target_id,
            permission_type,
            user_id,
        )
        return grant

    def revoke_permission(self, user_id: int, robot_id: int, target_user_id: int) -> None:
        robot = self._robot_by_id(robot_id)
        self._require_management(self._facts(user_id, robot))
        if not self.store.delete_grant(robot.id, target_user_id):
            raise NotFoundError("Permission not found")
        logger.info("Permission revoked: robot=%s user=%d by user=%d", robot.serial_number, target_user_id, user_id)

    def list_permissions(self, user_id: int, serial_number: str) -> list[dict]:
        robot = self._robot_by_serial(serial_number)
        self._require_management(self._facts(user_id, robot))
        return self.store.list_grants(robot.id)

    def assign_robot(
        self,
        user_id: int,
        robot_id: int,
        target_user_id: Optional[int] = None,
        target_email: Optional[str] = None,
        permission_type: Optional[str] = None,
    ) -> RobotPermission:
        """Attach a group-owned robot to a user. Only admins of the owning group may."""
        permission_type = access.validate_grant_type(permission_type or GRANT_USAGE)
        robot = self._robot_by_id(robot_id)
        caller_role = None
        if robot.owner_type == OWNER_GROUP:
            caller_role = self._caller_role(user_id, robot.owner_group_id)
        access.check_assignment(robot, caller_role)
        target_id = self.resolve_user(target_user_id, target_email)

        grant = self.store.upsert_grant(
            RobotPermission(user_id=target_id, robot_id=robot.id, permission_type=permission_type, granted_by=user_id)
        )
        logger.info(
            "Robot assigned: robot=%s user=%d type=%s by user=%d",
            robot.serial_number,
            target_id,
            permission_type,
            user_id,
        )
        return grant

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self, user_id: int, serial_number: str) -> RobotSettings:
        """Return the caller's own settings for a robot. Other users' rows are never read."""
        robot = self._robot_by_serial(serial_number)
        settings = self.store.get_settings(user_id, robot.id)
        if settings is None:
            raise NotFoundError("Settings not found")
        return settings

    def save_settings(self, user_id: int, serial_number: str, document: Any) -> RobotSettings:
        """Store the caller's settings document. Owner or any explicit grant required."""
        if not isinstance(document, dict):
            raise ValidationError("Settings payload must be an object")
        robot = self._robot_by_serial(serial_number)
        if not access.can_modify_settings(self._facts(user_id, robot)):
            logger.info("Denied settings write: user=%d robot=%s", user_id, serial_number)
            raise AuthorizationError("Insufficient permissions to modify settings")
        return self.store.upsert_settings(user_id, robot.id, document)

    def list_my_settings(self, user_id: int) -> list[dict]:
        return self.store.list_settings_for_user(user_id)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def explain(self, user_id: int, serial_number: str) -> dict:
        """Report every decision for (user, robot) without enforcing any of them."""
        robot = self._robot_by_serial(serial_number)
        facts = self._facts(user_id, robot)
        owner_type, owner_id = access.resolve_owner(robot)
        return {
            "serial_number": robot.serial_number,
            "owner_type": owner_type,
            "owner_id": owner_id,
            "grant": facts.grant,
            "group_role": facts.group_role,
            "permission_level": access.permission_level(facts, self.membership_implies_usage),
            "management_standing": access.has_management_standing(facts),
            "settings_standing": access.can_modify_settings(facts),
        }
