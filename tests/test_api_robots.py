"""
tests/test_api_robots.py -- Integration tests for robot, grant and assignment routes.

These tests exercise the full stack: FastAPI routing -> auth dependency ->
FleetService -> pure access decisions -> FleetStore -> response models.

Coverage:
  - Personal robot scenario: owner lists it, stranger gets 403, unknown serial 404
  - Group robot scenario: member cannot create for the group, admin assigns,
    member then sees it at usage
  - Grants: create, re-grant overwrite, list, revoke, 403 for usage grantees
  - 409 on duplicate serial, 400 on bad owner_type
"""

from __future__ import annotations

import pytest


@pytest.fixture(scope="module")
def client(api_client):
    return api_client[0]


class TestPersonalRobotScenario:
    def test_owner_and_stranger(self, client, register_user) -> None:
        a_headers, a_id, _ = register_user("Alice")
        b_headers, _, _ = register_user("Bob")

        resp = client.post(
            "/api/v1/robots",
            headers=a_headers,
            json={"serial_number": "SN-100", "name": "Mower", "owner_type": "user"},
        )
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        assert resp.json()["owner_user_id"] == a_id

        a_list = client.get("/api/v1/robots", headers=a_headers).json()
        assert [(r["serial_number"], r["permission_level"], r["ownership_type"]) for r in a_list] == [
            ("SN-100", "owner", "personal")
        ]

        b_list = client.get("/api/v1/robots", headers=b_headers).json()
        assert all(r["serial_number"] != "SN-100" for r in b_list)

        forbidden = client.get("/api/v1/robots/SN-100", headers=b_headers)
        assert forbidden.status_code == 403
        assert forbidden.json()["error"]["message"] == "Insufficient permissions"

        missing = client.get("/api/v1/robots/SN-999", headers=b_headers)
        assert missing.status_code == 404
        assert missing.json()["error"]["message"] == "Robot not found"

    def test_duplicate_serial(self, client, register_user) -> None:
        headers, _, _ = register_user("Dup")
        body = {"serial_number": "SN-DUP", "name": "One", "owner_type": "user"}
        assert client.post("/api/v1/robots", headers=headers, json=body).status_code == 201
        resp = client.post("/api/v1/robots", headers=headers, json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["message"] == "Serial number already exists"

    def test_bad_owner_type(self, client, register_user) -> None:
        headers, _, _ = register_user("Typo")
        resp = client.post(
            "/api/v1/robots",
            headers=headers,
            json={"serial_number": "SN-TYPO", "name": "x", "owner_type": "fleet"},
        )
        assert resp.status_code == 400

    def test_requires_auth(self, client) -> None:
        assert client.get("/api/v1/robots").status_code == 401


class TestGroupRobotScenario:
    def test_admin_assigns_member(self, client, register_user) -> None:
        admin_headers, _, _ = register_user("GroupAdmin")
        member_headers, member_id, member_email = register_user("GroupMember")

        gid = client.post("/api/v1/groups", headers=admin_headers, json={"name": "Warehouse"}).json()["id"]
        invite = client.post(
            f"/api/v1/groups/{gid}/members",
            headers=admin_headers,
            json={"user_email": member_email, "role": "member"},
        )
        assert invite.status_code == 200, invite.text

        denied = client.post(
            "/api/v1/robots",
            headers=member_headers,
            json={"serial_number": "GRP-X", "name": "Nope", "owner_type": "group", "owner_group_id": gid},
        )
        assert denied.status_code == 403

        created = client.post(
            "/api/v1/robots",
            headers=admin_headers,
            json={"serial_number": "GRP-1", "name": "Picker", "owner_type": "group", "owner_group_id": gid},
        )
        assert created.status_code == 201
        robot_id = created.json()["id"]

        # No grant yet: a plain member neither lists nor fetches the robot.
        assert all(r["serial_number"] != "GRP-1" for r in client.get("/api/v1/robots", headers=member_headers).json())
        assert client.get("/api/v1/robots/GRP-1", headers=member_headers).status_code == 403

        assign = client.post(f"/api/v1/robots/{robot_id}/assign", headers=admin_headers, json={"user_id": member_id})
        assert assign.status_code == 200, assign.text
        assert assign.json()["permission_type"] == "usage"

        listed = {r["serial_number"]: r for r in client.get("/api/v1/robots", headers=member_headers).json()}
        assert listed["GRP-1"]["permission_level"] == "usage"
        assert listed["GRP-1"]["ownership_type"] == "group"

        detail = client.get("/api/v1/robots/GRP-1", headers=member_headers)
        assert detail.status_code == 200
        assert detail.json()["is_group_admin"] is False

    def test_assign_personal_robot_rejected(self, client, register_user) -> None:
        headers, _, _ = register_user("Solo")
        _, other_id, _ = register_user("Other")
        rid = client.post(
            "/api/v1/robots",
            headers=headers,
            json={"serial_number": "SN-SOLO", "name": "Solo", "owner_type": "user"},
        ).json()["id"]

        resp = client.post(f"/api/v1/robots/{rid}/assign", headers=headers, json={"user_id": other_id})
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Only group-owned robots can be assigned"


class TestGrants:
    def _robot(self, client, headers, serial: str) -> int:
        resp = client.post(
            "/api/v1/robots",
            headers=headers,
            json={"serial_number": serial, "name": serial, "owner_type": "user"},
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["id"]

    def test_grant_regrant_list_revoke(self, client, register_user) -> None:
        owner_headers, _, _ = register_user("Owner")
        guest_headers, guest_id, guest_email = register_user("Guest")
        rid = self._robot(client, owner_headers, "SN-GRANT")

        first = client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=owner_headers,
            json={"user_email": guest_email, "permission_type": "usage"},
        )
        assert first.status_code == 200, first.text
        second = client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=owner_headers,
            json={"user_id": guest_id, "permission_type": "admin"},
        )
        assert second.json()["id"] == first.json()["id"]

        rows = client.get("/api/v1/robots/SN-GRANT/permissions", headers=owner_headers).json()
        assert [(r["user_id"], r["permission_type"]) for r in rows] == [(guest_id, "admin")]

        detail = client.get("/api/v1/robots/SN-GRANT", headers=guest_headers).json()
        assert detail["permission_level"] == "admin"
        assert detail["ownership_type"] == "shared"

        revoke = client.delete(f"/api/v1/robots/{rid}/permissions/{guest_id}", headers=owner_headers)
        assert revoke.status_code == 204
        assert client.get("/api/v1/robots/SN-GRANT", headers=guest_headers).status_code == 403
        again = client.delete(f"/api/v1/robots/{rid}/permissions/{guest_id}", headers=owner_headers)
        assert again.status_code == 404

    def test_usage_grantee_cannot_manage(self, client, register_user) -> None:
        owner_headers, _, _ = register_user("Owner2")
        guest_headers, guest_id, _ = register_user("Guest2")
        _, third_id, _ = register_user("Third")
        rid = self._robot(client, owner_headers, "SN-USAGE")
        client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=owner_headers,
            json={"user_id": guest_id, "permission_type": "usage"},
        )

        resp = client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=guest_headers,
            json={"user_id": third_id, "permission_type": "usage"},
        )
        assert resp.status_code == 403
        assert client.get("/api/v1/robots/SN-USAGE/permissions", headers=guest_headers).status_code == 403

    def test_unknown_email(self, client, register_user) -> None:
        owner_headers, _, _ = register_user("Owner3")
        rid = self._robot(client, owner_headers, "SN-EMAIL")
        resp = client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=owner_headers,
            json={"user_email": "nobody@example.com", "permission_type": "usage"},
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "User with provided email not found"

    def test_grant_on_unknown_robot(self, client, register_user) -> None:
        headers, user_id, _ = register_user("Nobody")
        resp = client.post(
            "/api/v1/robots/999999/permissions",
            headers=headers,
            json={"user_id": user_id, "permission_type": "usage"},
        )
        assert resp.status_code == 404

    def test_oversized_robot_id_is_400(self, client, register_user) -> None:
        """Ids past the 64-bit range are rejected before they reach the database."""
        headers, user_id, _ = register_user("Huge")
        resp = client.post(
            "/api/v1/robots/99999999999999999999999/permissions",
            headers=headers,
            json={"user_id": user_id, "permission_type": "usage"},
        )
        assert resp.status_code == 400, f"Expected 400, got {resp.status_code}: {resp.text}"
        assert resp.json()["error"]["code"] == "validation_error"

        revoke = client.delete(f"/api/v1/robots/1/permissions/{2**64}", headers=headers)
        assert revoke.status_code == 400

    def test_oversized_body_user_id_is_400(self, client, register_user) -> None:
        headers, _, _ = register_user("HugeBody")
        rid = self._robot(client, headers, "SN-HUGE")
        resp = client.post(
            f"/api/v1/robots/{rid}/permissions",
            headers=headers,
            json={"user_id": 2**64, "permission_type": "usage"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"
