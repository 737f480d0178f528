"""
fleet/store.py -- SQLAlchemy-backed persistence layer for the robot fleet.

Uses SQLAlchemy Core (not ORM) so the dataclasses in fleet/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. FleetStore is the repository; the _row_to_*
functions are the mappers. Service code never touches SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Upsert contract:
  Grants, settings and memberships are keyed on a unique pair. _upsert()
  inserts in its own transaction and, when the unique key collides, updates
  the existing row in a second transaction. Concurrent writers for the same
  key converge to last-write-wins without application-level locking.

Atomicity:
  create_group() writes the group and the creator's admin membership in one
  transaction; a failure on either statement rolls back both.

The member and grant listings join against auth.store.users, so FleetStore
must be opened on the same database URL as UserStore. The users table is
created here too when missing so the store can be used on its own.

Usage:
    store = FleetStore()                                # DATABASE_URL
    store = FleetStore("postgresql://user:pw@host/db")  # explicit URL
    group_id = store.create_group(Group(name="Night shift", created_by=1))
    store.upsert_grant(RobotPermission(user_id=2, robot_id=7, permission_type="usage", granted_by=1))
    store.close()
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    and_,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.store import make_engine
from auth.store import metadata as auth_metadata
from auth.store import users as _users
from core.config import get_settings
from core.errors import UnexpectedError
from fleet.access import resolve_owner
from fleet.models import (
    ROLE_ADMIN,
    Group,
    GroupMembership,
    Robot,
    RobotPermission,
    RobotSettings,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_groups = Table(
    "groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_group_members = Table(
    "group_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("group_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("role", String(20), nullable=False, server_default="member"),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("group_id", "user_id", name="uq_group_member"),
)

_robots = Table(
    "robots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("serial_number", String(100), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("model", String(100)),
    Column("owner_type", String(10), nullable=False),
    Column("owner_user_id", Integer),
    Column("owner_group_id", Integer),
    Column("created_at", String(32), nullable=False),
)

_permissions = Table(
    "robot_permissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("robot_id", Integer, nullable=False),
    Column("permission_type", String(10), nullable=False),
    Column("granted_by", Integer, nullable=False),
    Column("granted_at", String(32), nullable=False),
    UniqueConstraint("user_id", "robot_id", name="uq_robot_permission"),
)

_settings = Table(
    "robot_settings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("robot_id", Integer, nullable=False),
    Column("settings", Text, nullable=False),  # JSON object serialized as text
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "robot_id", name="uq_robot_settings"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class FleetStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        auth_metadata.create_all(self.engine)
        metadata.create_all(self.engine)

    def _upsert(
        self,
        table: Table,
        keys: dict[str, Any],
        values: dict[str, Any],
        insert_only: Optional[dict[str, Any]] = None,
    ) -> None:
        """Insert keys+values; on a unique-key collision update values on the existing row.

        insert_only columns are written on insert and left alone on update.
        If the update matches nothing (the colliding row vanished, or the
        IntegrityError came from a different constraint) the original error
        is re-raised.
        """
        try:
            with self.engine.begin() as conn:
                conn.execute(table.insert().values(**keys, **values, **(insert_only or {})))
        except IntegrityError:
            where = and_(*(table.c[k] == v for k, v in keys.items()))
            with self.engine.begin() as conn:
                result = conn.execute(table.update().where(where).values(**values))
            if result.rowcount == 0:
                raise

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, group: Group) -> int:
        """Insert a group and its creator's admin membership atomically. Returns the group ID."""
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_groups.insert().values(name=group.name, created_by=group.created_by, created_at=now))
            group_id = result.inserted_primary_key[0]
            conn.execute(
                _group_members.insert().values(
                    group_id=group_id,
                    user_id=group.created_by,
                    role=ROLE_ADMIN,
                    created_at=now,
                )
            )
        return group_id

    def get_group(self, group_id: int) -> Optional[Group]:
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.id == group_id)).fetchone()
        return _row_to_group(row) if row is not None else None

    def list_groups_for_user(self, user_id: int) -> list[dict]:
        """Return the groups user_id belongs to, with the user's role, ordered by name.

        Returns:
            [{"id", "name", "created_at", "role"}, ...]
        """
        stmt = (
            select(_groups.c.id, _groups.c.name, _groups.c.created_at, _group_members.c.role)
            .select_from(_group_members.join(_groups, _groups.c.id == _group_members.c.group_id))
            .where(_group_members.c.user_id == user_id)
            .order_by(_groups.c.name, _groups.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [{"id": r.id, "name": r.name, "created_at": r.created_at, "role": r.role} for r in rows]

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def get_membership(self, group_id: int, user_id: int) -> Optional[GroupMembership]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _group_members.select().where(
                    (_group_members.c.group_id == group_id) & (_group_members.c.user_id == user_id)
                )
            ).fetchone()
        return _row_to_membership(row) if row is not None else None

    def memberships_for_user(self, user_id: int) -> list[GroupMembership]:
        with self.engine.connect() as conn:
            rows = conn.execute(_group_members.select().where(_group_members.c.user_id == user_id)).fetchall()
        return [_row_to_membership(r) for r in rows]

    def upsert_member(self, group_id: int, user_id: int, role: str) -> GroupMembership:
        """Add user_id to the group, or overwrite the role of an existing member."""
        self._upsert(
            _group_members,
            keys={"group_id": group_id, "user_id": user_id},
            values={"role": role},
            insert_only={"created_at": _now_iso()},
        )
        membership = self.get_membership(group_id, user_id)
        if membership is None:
            raise UnexpectedError("Membership not found after write.")
        return membership

    def remove_member(self, group_id: int, user_id: int) -> bool:
        """Delete a membership. Returns False if the user was not a member.

        Grants the user holds on the group's robots are left untouched.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _group_members.delete().where(
                    (_group_members.c.group_id == group_id) & (_group_members.c.user_id == user_id)
                )
            )
        return result.rowcount > 0

    def list_members(self, group_id: int) -> list[dict]:
        """Return [{"user_id", "name", "email", "role"}, ...] ordered by member name."""
        stmt = (
            select(_group_members.c.user_id, _group_members.c.role, _users.c.name, _users.c.email)
            .select_from(_group_members.join(_users, _users.c.id == _group_members.c.user_id))
            .where(_group_members.c.group_id == group_id)
            .order_by(_users.c.name, _users.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [{"user_id": r.user_id, "name": r.name, "email": r.email, "role": r.role} for r in rows]

    # ------------------------------------------------------------------
    # Robots
    # ------------------------------------------------------------------

    def create_robot(self, robot: Robot) -> int:
        """Insert a robot and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the serial number already exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _robots.insert().values(
                    serial_number=robot.serial_number,
                    name=robot.name,
                    model=robot.model,
                    owner_type=robot.owner_type,
                    owner_user_id=robot.owner_user_id,
                    owner_group_id=robot.owner_group_id,
                    created_at=_now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def get_robot(self, robot_id: int) -> Optional[Robot]:
        with self.engine.connect() as conn:
            row = conn.execute(_robots.select().where(_robots.c.id == robot_id)).fetchone()
        return _row_to_robot(row) if row is not None else None

    def get_robot_by_serial(self, serial_number: str) -> Optional[Robot]:
        with self.engine.connect() as conn:
            row = conn.execute(_robots.select().where(_robots.c.serial_number == serial_number)).fetchone()
        return _row_to_robot(row) if row is not None else None

    def list_candidate_robots(self, user_id: int) -> list[Robot]:
        """Return every robot user_id might see, newest first, one entry per robot.

        A robot is a candidate when the user owns it, belongs to its owning
        group, or holds any grant on it. Each condition is a subquery on the
        robots table rather than a join, so a robot matching several of them
        still comes back once. The caller decides the final access level.
        """
        member_groups = select(_group_members.c.group_id).where(_group_members.c.user_id == user_id)
        granted_robots = select(_permissions.c.robot_id).where(_permissions.c.user_id == user_id)
        stmt = (
            _robots.select()
            .where(
                or_(
                    _robots.c.owner_user_id == user_id,
                    _robots.c.owner_group_id.in_(member_groups),
                    _robots.c.id.in_(granted_robots),
                )
            )
            .order_by(_robots.c.created_at.desc(), _robots.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_robot(r) for r in rows]

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def upsert_grant(self, grant: RobotPermission) -> RobotPermission:
        """Create or overwrite the (user, robot) grant. Returns the stored row."""
        self._upsert(
            _permissions,
            keys={"user_id": grant.user_id, "robot_id": grant.robot_id},
            values={
                "permission_type": grant.permission_type,
                "granted_by": grant.granted_by,
                "granted_at": _now_iso(),
            },
        )
        stored = self.get_grant(grant.user_id, grant.robot_id)
        if stored is None:
            raise UnexpectedError("Permission not found after write.")
        return stored

    def get_grant(self, user_id: int, robot_id: int) -> Optional[RobotPermission]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _permissions.select().where((_permissions.c.user_id == user_id) & (_permissions.c.robot_id == robot_id))
            ).fetchone()
        return _row_to_grant(row) if row is not None else None

    def grants_for_user(self, user_id: int) -> list[RobotPermission]:
        with self.engine.connect() as conn:
            rows = conn.execute(_permissions.select().where(_permissions.c.user_id == user_id)).fetchall()
        return [_row_to_grant(r) for r in rows]

    def delete_grant(self, robot_id: int, user_id: int) -> bool:
        """Delete a grant. Returns False if no such grant existed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _permissions.delete().where((_permissions.c.robot_id == robot_id) & (_permissions.c.user_id == user_id))
            )
        return result.rowcount > 0

    def list_grants(self, robot_id: int) -> list[dict]:
        """Return grants on a robot with grantee identity, ordered by grantee name.

        Returns:
            [{"id", "user_id", "permission_type", "granted_by", "granted_at", "name", "email"}, ...]
        """
        stmt = (
            select(
                _permissions.c.id,
                _permissions.c.user_id,
                _permissions.c.permission_type,
                _permissions.c.granted_by,
                _permissions.c.granted_at,
                _users.c.name,
                _users.c.email,
            )
            .select_from(_permissions.join(_users, _users.c.id == _permissions.c.user_id))
            .where(_permissions.c.robot_id == robot_id)
            .order_by(_users.c.name, _users.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            {
                "id": r.id,
                "user_id": r.user_id,
                "permission_type": r.permission_type,
                "granted_by": r.granted_by,
                "granted_at": r.granted_at,
                "name": r.name,
                "email": r.email,
            }
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def upsert_settings(self, user_id: int, robot_id: int, settings: dict[str, Any]) -> RobotSettings:
        """Create or replace user_id's settings document for robot_id."""
        self._upsert(
            _settings,
            keys={"user_id": user_id, "robot_id": robot_id},
            values={"settings": json.dumps(settings), "updated_at": _now_iso()},
        )
        stored = self.get_settings(user_id, robot_id)
        if stored is None:
            raise UnexpectedError("Settings not found after write.")
        return stored

    def get_settings(self, user_id: int, robot_id: int) -> Optional[RobotSettings]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _settings.select().where((_settings.c.user_id == user_id) & (_settings.c.robot_id == robot_id))
            ).fetchone()
        return _row_to_settings(row) if row is not None else None

    def list_settings_for_user(self, user_id: int) -> list[dict]:
        """Return all of user_id's settings rows with robot identity, most recently updated first.

        Returns:
            [{"id", "robot_id", "serial_number", "name", "settings", "updated_at"}, ...]
        """
        stmt = (
            select(
                _settings.c.id,
                _settings.c.robot_id,
                _settings.c.settings,
                _settings.c.updated_at,
                _robots.c.serial_number,
                _robots.c.name,
            )
            .select_from(_settings.join(_robots, _robots.c.id == _settings.c.robot_id))
            .where(_settings.c.user_id == user_id)
            .order_by(_settings.c.updated_at.desc(), _settings.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            {
                "id": r.id,
                "robot_id": r.robot_id,
                "serial_number": r.serial_number,
                "name": r.name,
                "settings": json.loads(r.settings),
                "updated_at": r.updated_at,
            }
            for r in rows
        ]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_group(row) -> Group:
    return Group(id=row.id, name=row.name, created_by=row.created_by, created_at=row.created_at)


def _row_to_membership(row) -> GroupMembership:
    return GroupMembership(id=row.id, group_id=row.group_id, user_id=row.user_id, role=row.role)


def _row_to_robot(row) -> Robot:
    robot = Robot(
        id=row.id,
        serial_number=row.serial_number,
        name=row.name,
        model=row.model,
        owner_type=row.owner_type,
        owner_user_id=row.owner_user_id,
        owner_group_id=row.owner_group_id,
        created_at=row.created_at,
    )
    try:
        resolve_owner(robot)
    except ValueError as exc:
        raise UnexpectedError(str(exc)) from exc
    return robot


def _row_to_grant(row) -> RobotPermission:
    return RobotPermission(
        id=row.id,
        user_id=row.user_id,
        robot_id=row.robot_id,
        permission_type=row.permission_type,
        granted_by=row.granted_by,
        granted_at=row.granted_at,
    )


def _row_to_settings(row) -> RobotSettings:
    return RobotSettings(
        id=row.id,
        user_id=row.user_id,
        robot_id=row.robot_id,
        settings=json.loads(row.settings),
        updated_at=row.updated_at,
    )
