"""시드 데이터 테스트.

Seed tests — idempotent catalog registration and super admin bootstrap.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.seed import SUPER_ADMIN_ROLE, SYSTEM_PERMISSIONS, SYSTEM_ROLES, bootstrap_super_admin, seed_rbac
from rbac_core.services.permission_resolver import permission_resolver
from rbac_core.services.role_graph import role_graph


class TestSeed:
    """시스템 카탈로그 시드 테스트."""

    async def test_seed_is_idempotent(self, db: AsyncSession, catalog):
        assert catalog == {"permissions": len(SYSTEM_PERMISSIONS), "roles": len(SYSTEM_ROLES)}
        assert await seed_rbac(db) == {"permissions": 0, "roles": 0}

    async def test_super_admin_holds_every_seeded_permission(self, db: AsyncSession, catalog):
        role = await role_graph.get_role_by_name(db, SUPER_ADMIN_ROLE)
        assert await role_graph.effective_permissions(db, role.id) == {p[0] for p in SYSTEM_PERMISSIONS}

    async def test_system_dependencies_registered(self, db: AsyncSession, catalog):
        from rbac_core.services.permission_catalog import permission_catalog

        assert await permission_catalog.implied_closure(db, "permissions.manage") == {"permissions.read"}


class TestBootstrap:
    """최초 super admin 할당 테스트."""

    async def test_bootstrap_grants_everything(self, db: AsyncSession, admin_user):
        assignment = await bootstrap_super_admin(db, admin_user.id)
        assert assignment.approval_status == "approved"
        assert assignment.is_primary is True

        effective = await permission_resolver.effective_permissions(db, admin_user.id)
        assert effective == {p[0] for p in SYSTEM_PERMISSIONS}
        assert await permission_resolver.has_permission(db, admin_user.id, "system.maintenance") is True
