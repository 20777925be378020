"""RBAC 관리 API 테스트.

RBAC admin API tests — authentication, permission-guarded endpoints,
role/permission CRUD, assignment lifecycle and authorization queries.
"""

import uuid

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.services.role_graph import role_graph
from tests.conftest import auth_header, make_token

BASE = "/api/v1/rbac"
ROLES_URL = f"{BASE}/roles"
PERMISSIONS_URL = f"{BASE}/permissions"
AUTHZ_URL = f"{BASE}/authorization"


def permission_payload(name: str, **extra) -> dict:
    module, action = name.split(".")[:2]
    return {
        "name": name,
        "display_name": name,
        "module": module,
        "category": extra.pop("category", "read"),
        "resource": module,
        "action": action,
        "scope": "global",
        **extra,
    }


class TestAuthentication:
    """인증 테스트."""

    async def test_health(self, client: AsyncClient):
        res = await client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_missing_token(self, client: AsyncClient):
        res = await client.get(ROLES_URL)
        assert res.status_code in (401, 403)

    async def test_invalid_token(self, client: AsyncClient):
        res = await client.get(ROLES_URL, headers=auth_header("not-a-jwt"))
        assert res.status_code == 401

    async def test_unknown_user_token(self, client: AsyncClient):
        res = await client.get(ROLES_URL, headers=auth_header(make_token(uuid.uuid4())))
        assert res.status_code == 401

    async def test_member_without_permission_forbidden(self, client: AsyncClient, catalog, member_token):
        res = await client.get(ROLES_URL, headers=auth_header(member_token))
        assert res.status_code == 403
        assert res.json()["detail"] == "Permission roles.read denied: No currently valid role assignments"


class TestRoleEndpoints:
    """역할 API 테스트."""

    async def test_list_roles(self, client: AsyncClient, admin_token):
        res = await client.get(ROLES_URL, headers=auth_header(admin_token))
        assert res.status_code == 200
        names = {r["name"] for r in res.json()}
        assert {"super_admin", "state_admin", "field_staff"}.issubset(names)

    async def test_create_update_delete_role(self, client: AsyncClient, admin_token):
        res = await client.post(ROLES_URL, json={
            "name": "auditor",
            "display_name": "Auditor",
            "level": 4,
            "category": "staff",
            "permissions": ["audit.read"],
            "inherits_from": ["area_admin"],
        }, headers=auth_header(admin_token))
        assert res.status_code == 201
        role = res.json()
        assert role["permissions"] == ["audit.read"]
        assert role["inherits_from"] == ["area_admin"]

        res = await client.get(f"{ROLES_URL}/{role['id']}/effective-permissions", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert set(res.json()) == {"audit.read", "users.read.regional", "roles.read", "reports.read.regional"}

        res = await client.put(f"{ROLES_URL}/{role['id']}", json={"display_name": "Internal Auditor"},
                               headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["display_name"] == "Internal Auditor"

        res = await client.delete(f"{ROLES_URL}/{role['id']}", headers=auth_header(admin_token))
        assert res.status_code == 204

    async def test_duplicate_role_rejected(self, client: AsyncClient, admin_token):
        res = await client.post(ROLES_URL, json={
            "name": "field_staff", "display_name": "Again", "level": 6, "category": "staff",
        }, headers=auth_header(admin_token))
        assert res.status_code == 400

    async def test_system_role_update_forbidden(self, client: AsyncClient, db: AsyncSession, admin_token):
        role = await role_graph.get_role_by_name(db, "super_admin")
        res = await client.put(f"{ROLES_URL}/{role.id}", json={"display_name": "Root"},
                               headers=auth_header(admin_token))
        assert res.status_code == 403

    async def test_hierarchy_and_holders(self, client: AsyncClient, db: AsyncSession, admin_token):
        res = await client.get(f"{ROLES_URL}/hierarchy", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()[0]["level"] == 0

        role = await role_graph.get_role_by_name(db, "super_admin")
        res = await client.get(f"{ROLES_URL}/{role.id}/holders", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["total"] == 1


class TestPermissionEndpoints:
    """권한 카탈로그 API 테스트."""

    async def test_register_and_query(self, client: AsyncClient, admin_token):
        res = await client.post(PERMISSIONS_URL, json=permission_payload("docs.read"), headers=auth_header(admin_token))
        assert res.status_code == 201
        res = await client.post(PERMISSIONS_URL, json=permission_payload(
            "docs.edit", category="update", dependencies={"implies": ["docs.read"]},
        ), headers=auth_header(admin_token))
        assert res.status_code == 201
        assert res.json()["dependencies"]["implies"] == ["docs.read"]

        res = await client.get(PERMISSIONS_URL, params={"module": "docs"}, headers=auth_header(admin_token))
        assert [p["name"] for p in res.json()] == ["docs.read", "docs.edit"]

        res = await client.get(f"{PERMISSIONS_URL}/docs.edit/implied", headers=auth_header(admin_token))
        assert res.json() == ["docs.read"]

    async def test_invalid_name_rejected(self, client: AsyncClient, admin_token):
        res = await client.post(PERMISSIONS_URL, json=permission_payload("Docs.Read"), headers=auth_header(admin_token))
        assert res.status_code == 422

    async def test_deactivate(self, client: AsyncClient, admin_token):
        await client.post(PERMISSIONS_URL, json=permission_payload("docs.read"), headers=auth_header(admin_token))
        res = await client.delete(f"{PERMISSIONS_URL}/docs.read", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["is_active"] is False

        res = await client.get(f"{PERMISSIONS_URL}/docs.read", headers=auth_header(admin_token))
        assert res.status_code == 404


class TestAssignmentEndpoints:
    """할당 API 테스트."""

    async def test_assign_suspend_reactivate_revoke(
        self, client: AsyncClient, db: AsyncSession, admin_token, member_user
    ):
        role = await role_graph.get_role_by_name(db, "field_staff")
        url = f"{BASE}/users/{member_user.id}/roles"

        res = await client.post(url, json={"role_id": str(role.id), "reason": "Onboarding"},
                                headers=auth_header(admin_token))
        assert res.status_code == 201
        assert res.json()["approval_status"] == "approved"
        assert res.json()["role_name"] == "field_staff"

        res = await client.post(f"{url}/{role.id}/suspend", json={"reason": "Review"}, headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["is_active"] is False

        res = await client.post(f"{url}/{role.id}/reactivate", json={}, headers=auth_header(admin_token))
        assert res.json()["is_active"] is True

        res = await client.delete(f"{url}/{role.id}", params={"reason": "Left"}, headers=auth_header(admin_token))
        assert res.status_code == 200
        body = res.json()
        assert body["approval_status"] == "revoked"
        assert [h["action"] for h in body["history"]] == ["assigned", "suspended", "reactivated", "revoked"]

        res = await client.get(url, params={"include_inactive": True}, headers=auth_header(admin_token))
        assert len(res.json()) == 1

    async def test_duplicate_assignment_conflict(self, client: AsyncClient, db: AsyncSession, admin_token, member_user):
        role = await role_graph.get_role_by_name(db, "field_staff")
        url = f"{BASE}/users/{member_user.id}/roles"
        await client.post(url, json={"role_id": str(role.id)}, headers=auth_header(admin_token))
        res = await client.post(url, json={"role_id": str(role.id)}, headers=auth_header(admin_token))
        assert res.status_code == 409

    async def test_approval_flow(self, client: AsyncClient, db: AsyncSession, admin_token, member_user):
        role = await role_graph.get_role_by_name(db, "state_admin")
        res = await client.post(f"{BASE}/users/{member_user.id}/roles", json={"role_id": str(role.id)},
                                headers=auth_header(admin_token))
        assert res.status_code == 201
        assert res.json()["approval_status"] == "pending"
        assignment_id = res.json()["id"]

        res = await client.post(f"{BASE}/assignments/{assignment_id}/approve", json={"reason": "Confirmed"},
                                headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["approval_status"] == "approved"
        assert res.json()["approval_comments"] == "Confirmed"

    async def test_restriction_endpoints(self, client: AsyncClient, db: AsyncSession, admin_token, member_user):
        role = await role_graph.get_role_by_name(db, "field_staff")
        res = await client.post(f"{BASE}/users/{member_user.id}/roles", json={"role_id": str(role.id)},
                                headers=auth_header(admin_token))
        assignment_id = res.json()["id"]

        res = await client.post(f"{BASE}/assignments/{assignment_id}/restrictions",
                                json={"permission": "users.update.own", "reason": "Read-only period"},
                                headers=auth_header(admin_token))
        assert res.status_code == 200
        assert [o["permission"] for o in res.json()["restricted_permissions"]] == ["users.update.own"]

        res = await client.post(f"{AUTHZ_URL}/{member_user.id}/check-permission",
                                json={"permission": "users.update.own"}, headers=auth_header(admin_token))
        assert res.json()["allowed"] is False

        res = await client.delete(f"{BASE}/assignments/{assignment_id}/restrictions/users.update.own",
                                  headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json()["restricted_permissions"] == []

    async def test_member_cannot_assign(self, client: AsyncClient, db: AsyncSession, catalog, member_user, member_token):
        role = await role_graph.get_role_by_name(db, "field_staff")
        res = await client.post(f"{BASE}/users/{member_user.id}/roles", json={"role_id": str(role.id)},
                                headers=auth_header(member_token))
        assert res.status_code == 403


class TestAuthorizationEndpoints:
    """권한 판정 API 테스트."""

    async def test_self_inspection_allowed(self, client: AsyncClient, catalog, member_user, member_token):
        res = await client.post(f"{AUTHZ_URL}/{member_user.id}/check-permission",
                                json={"permission": "roles.read"}, headers=auth_header(member_token))
        assert res.status_code == 200
        assert res.json() == {
            "allowed": False,
            "permission": "roles.read",
            "reason": "No currently valid role assignments",
            "requires_approval": False,
            "audit_required": False,
        }

    async def test_inspecting_others_requires_permission(
        self, client: AsyncClient, admin_user, member_token, super_admin
    ):
        res = await client.get(f"{AUTHZ_URL}/{admin_user.id}/permissions", headers=auth_header(member_token))
        assert res.status_code == 403

    async def test_admin_queries(self, client: AsyncClient, admin_user, admin_token):
        res = await client.get(f"{AUTHZ_URL}/{admin_user.id}/permissions", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert "system.maintenance" in res.json()["permissions"]

        res = await client.post(f"{AUTHZ_URL}/{admin_user.id}/check-permissions/all",
                                json={"permissions": ["roles.read", "roles.assign"]}, headers=auth_header(admin_token))
        assert res.json() == {"allowed": True, "missing": []}

        res = await client.post(f"{AUTHZ_URL}/{admin_user.id}/check-permissions/any",
                                json={"permissions": ["nothing.here", "roles.read"]}, headers=auth_header(admin_token))
        assert res.json() == {"allowed": True, "missing": ["nothing.here"]}

        res = await client.get(f"{AUTHZ_URL}/{admin_user.id}/explain", params={"permission": "roles.read"},
                               headers=auth_header(admin_token))
        assert res.json()["assignments"][0]["outcome"] == "granted"
        assert res.json()["assignments"][0]["via_role"] == "super_admin"

        res = await client.get(f"{AUTHZ_URL}/{admin_user.id}/scope", headers=auth_header(admin_token))
        assert res.json()["unrestricted"] == ["region", "project", "scheme"]

        res = await client.post(f"{AUTHZ_URL}/{admin_user.id}/resource-access",
                                json={"resource": [{"kind": "region", "id": "north"}]}, headers=auth_header(admin_token))
        assert res.json() == {"allowed": True}


class TestMaintenanceEndpoints:
    """유지보수 API 테스트."""

    async def test_sweep_and_initialize(self, client: AsyncClient, admin_token):
        res = await client.post(f"{BASE}/maintenance/sweep", headers=auth_header(admin_token))
        assert res.status_code == 200
        assert res.json() == {"expired": 0}

        res = await client.post(f"{BASE}/maintenance/initialize", headers=auth_header(admin_token))
        assert res.json() == {"permissions": 0, "roles": 0}

    async def test_member_cannot_sweep(self, client: AsyncClient, catalog, member_token):
        res = await client.post(f"{BASE}/maintenance/sweep", headers=auth_header(member_token))
        assert res.status_code == 403
