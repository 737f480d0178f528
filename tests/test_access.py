"""Unit tests for fleet/access.py -- pure authorization decisions.

Covers:
- resolve_owner() and resolve_new_ownership() for user and group robots
- group_role() / find_grant() lookups over plain rows
- permission_level() precedence: owner > explicit grant > membership flag > none
- ownership_type() labels
- has_management_standing() vs can_modify_settings() asymmetry
- check_assignment() gates
"""

import pytest

from core.errors import AuthorizationError, ValidationError
from fleet import access
from fleet.access import AccessFacts
from fleet.models import GroupMembership, Robot, RobotPermission

OWNER_ID = 1
OTHER_ID = 2
GROUP_ID = 10


def _personal(owner_id: int = OWNER_ID) -> Robot:
    return Robot(serial_number="SN-100", name="Mower", owner_type="user", owner_user_id=owner_id, id=100)


def _group_robot(group_id: int = GROUP_ID) -> Robot:
    return Robot(serial_number="GRP-1", name="Picker", owner_type="group", owner_group_id=group_id, id=200)


# ---------------------------------------------------------------------------
# Ownership resolver
# ---------------------------------------------------------------------------


class TestResolveOwner:
    def test_user_robot(self):
        assert access.resolve_owner(_personal()) == ("user", OWNER_ID)

    def test_group_robot(self):
        assert access.resolve_owner(_group_robot()) == ("group", GROUP_ID)

    def test_both_owner_columns_set_is_rejected(self):
        robot = Robot(serial_number="BAD", name="x", owner_type="user", owner_user_id=1, owner_group_id=2)
        with pytest.raises(ValueError):
            access.resolve_owner(robot)

    def test_group_type_without_group_id_is_rejected(self):
        robot = Robot(serial_number="BAD", name="x", owner_type="group", owner_user_id=1)
        with pytest.raises(ValueError):
            access.resolve_owner(robot)


class TestResolveNewOwnership:
    def test_user_ignores_group_id(self):
        """A personal robot belongs to its creator even if a group id is supplied."""
        assert access.resolve_new_ownership("user", 5, 99) == (5, None)

    def test_group_needs_group_id(self):
        with pytest.raises(ValidationError, match="Group ID is required"):
            access.resolve_new_ownership("group", 5, None)

    def test_group(self):
        assert access.resolve_new_ownership("group", 5, 7) == (None, 7)

    def test_unknown_owner_type(self):
        with pytest.raises(ValidationError, match="Invalid owner_type"):
            access.resolve_new_ownership("fleet", 5, None)


# ---------------------------------------------------------------------------
# Role and grant lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_group_role_found(self):
        rows = [
            GroupMembership(group_id=GROUP_ID, user_id=OTHER_ID, role="member"),
            GroupMembership(group_id=GROUP_ID, user_id=OWNER_ID, role="admin"),
        ]
        assert access.group_role(rows, OWNER_ID, GROUP_ID) == "admin"
        assert access.group_role(rows, OTHER_ID, GROUP_ID) == "member"

    def test_group_role_other_group_is_none(self):
        rows = [GroupMembership(group_id=11, user_id=OWNER_ID, role="admin")]
        assert access.group_role(rows, OWNER_ID, GROUP_ID) is None

    def test_find_grant(self):
        rows = [RobotPermission(user_id=OTHER_ID, robot_id=100, permission_type="usage", granted_by=OWNER_ID)]
        assert access.find_grant(rows, OTHER_ID, 100) == "usage"
        assert access.find_grant(rows, OTHER_ID, 101) is None

    def test_validate_grant_type(self):
        assert access.validate_grant_type("admin") == "admin"
        with pytest.raises(ValidationError, match="Invalid permission_type"):
            access.validate_grant_type("owner")


# ---------------------------------------------------------------------------
# Combinator
# ---------------------------------------------------------------------------


class TestPermissionLevel:
    def test_owner(self):
        assert access.permission_level(AccessFacts(OWNER_ID, _personal())) == "owner"

    def test_owner_not_overridden_by_grant(self):
        """A stray grant row for the owner never downgrades them."""
        facts = AccessFacts(OWNER_ID, _personal(), grant="usage")
        assert access.permission_level(facts) == "owner"

    @pytest.mark.parametrize("grant", ["usage", "admin"])
    def test_grant_on_someone_elses_robot(self, grant):
        facts = AccessFacts(OTHER_ID, _personal(), grant=grant)
        assert access.permission_level(facts) == grant

    def test_grant_wins_over_group_role(self):
        facts = AccessFacts(OTHER_ID, _group_robot(), grant="usage", group_role="admin")
        assert access.permission_level(facts) == "usage"

    def test_stranger_is_none(self):
        assert access.permission_level(AccessFacts(OTHER_ID, _personal())) == "none"

    def test_unrecognized_grant_value_is_none(self):
        """Only the known grant types map to a level; anything else stored grants nothing."""
        facts = AccessFacts(OTHER_ID, _personal(), grant="owner")
        assert access.permission_level(facts) == "none"

    def test_group_member_without_grant_is_none_by_default(self):
        facts = AccessFacts(OTHER_ID, _group_robot(), group_role="member")
        assert access.permission_level(facts) == "none"

    def test_group_admin_without_grant_is_none_by_default(self):
        facts = AccessFacts(OTHER_ID, _group_robot(), group_role="admin")
        assert access.permission_level(facts) == "none"

    def test_group_member_with_flag_is_usage(self):
        facts = AccessFacts(OTHER_ID, _group_robot(), group_role="member")
        assert access.permission_level(facts, membership_implies_usage=True) == "usage"

    def test_flag_does_not_apply_to_personal_robots(self):
        facts = AccessFacts(OTHER_ID, _personal(), group_role="member")
        assert access.permission_level(facts, membership_implies_usage=True) == "none"


class TestOwnershipType:
    def test_personal(self):
        assert access.ownership_type(AccessFacts(OWNER_ID, _personal())) == "personal"

    def test_group(self):
        assert access.ownership_type(AccessFacts(OTHER_ID, _group_robot(), grant="usage")) == "group"

    def test_shared(self):
        assert access.ownership_type(AccessFacts(OTHER_ID, _personal(), grant="usage")) == "shared"


# ---------------------------------------------------------------------------
# Standing
# ---------------------------------------------------------------------------


class TestStanding:
    def test_owner_has_both(self):
        facts = AccessFacts(OWNER_ID, _personal())
        assert access.has_management_standing(facts)
        assert access.can_modify_settings(facts)

    def test_admin_grant_has_both(self):
        facts = AccessFacts(OTHER_ID, _personal(), grant="admin")
        assert access.has_management_standing(facts)
        assert access.can_modify_settings(facts)

    def test_usage_grant_settings_only(self):
        facts = AccessFacts(OTHER_ID, _personal(), grant="usage")
        assert not access.has_management_standing(facts)
        assert access.can_modify_settings(facts)

    def test_group_admin_manages_but_cannot_save_settings(self):
        """Group admin standing covers grants, not settings, without an explicit grant."""
        facts = AccessFacts(OTHER_ID, _group_robot(), group_role="admin")
        assert access.has_management_standing(facts)
        assert not access.can_modify_settings(facts)

    def test_group_member_has_neither(self):
        facts = AccessFacts(OTHER_ID, _group_robot(), group_role="member")
        assert not access.has_management_standing(facts)
        assert not access.can_modify_settings(facts)

    def test_group_role_ignored_on_personal_robot(self):
        facts = AccessFacts(OTHER_ID, _personal(), group_role="admin")
        assert not access.has_management_standing(facts)


class TestCheckAssignment:
    def test_personal_robot_rejected(self):
        with pytest.raises(ValidationError, match="Only group-owned robots can be assigned"):
            access.check_assignment(_personal(), "admin")

    def test_member_rejected(self):
        with pytest.raises(AuthorizationError, match="Only group admins can assign robots"):
            access.check_assignment(_group_robot(), "member")

    def test_non_member_rejected(self):
        with pytest.raises(AuthorizationError):
            access.check_assignment(_group_robot(), None)

    def test_admin_allowed(self):
        access.check_assignment(_group_robot(), "admin")
