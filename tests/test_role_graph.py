"""역할 그래프 테스트.

Role graph tests — inheritance closure, cycle rejection, conflicting
permissions, system role protection, deletion and statistics.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.schemas.role import RoleUpdate
from rbac_core.services.assignment_store import assignment_store
from rbac_core.services.role_graph import role_graph
from rbac_core.utils.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tests.conftest import grant, make_permission, make_role


async def _catalog(db: AsyncSession) -> None:
    for name in ("docs.read", "docs.write", "docs.publish", "docs.archive"):
        await make_permission(db, name)


class TestInheritance:
    """역할 상속 테스트."""

    async def test_effective_permissions_include_ancestors(self, db: AsyncSession):
        """직접 권한 + 모든 조상의 권한."""
        await _catalog(db)
        await make_role(db, "reader", permissions=["docs.read"])
        await make_role(db, "writer", permissions=["docs.write"], inherits_from=["reader"])
        editor = await make_role(db, "editor", permissions=["docs.publish"], inherits_from=["writer"])

        assert await role_graph.effective_permissions(db, editor.id) == {"docs.read", "docs.write", "docs.publish"}

    async def test_diamond_inheritance_deduplicates(self, db: AsyncSession):
        await _catalog(db)
        await make_role(db, "base", permissions=["docs.read"])
        await make_role(db, "left", permissions=["docs.write"], inherits_from=["base"])
        await make_role(db, "right", permissions=["docs.read", "docs.publish"], inherits_from=["base"])
        bottom = await make_role(db, "bottom", inherits_from=["left", "right"])

        assert await role_graph.effective_permissions(db, bottom.id) == {"docs.read", "docs.write", "docs.publish"}

    async def test_inactive_parent_contributes_nothing(self, db: AsyncSession):
        await _catalog(db)
        parent = await make_role(db, "parent", permissions=["docs.read"])
        child = await make_role(db, "child", permissions=["docs.write"], inherits_from=["parent"])
        await role_graph.update_role(db, parent.id, RoleUpdate(is_active=False))

        assert await role_graph.effective_permissions(db, child.id) == {"docs.write"}

    async def test_unknown_parent_fails(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await make_role(db, "orphan", inherits_from=["ghost"])

    async def test_self_inheritance_rejected(self, db: AsyncSession):
        with pytest.raises(ValidationError, match="Circular"):
            await make_role(db, "narcissus", inherits_from=["narcissus"])

    async def test_update_creating_cycle_rejected(self, db: AsyncSession):
        """A → B 상속이 있을 때 B → A 추가는 거부되고 그래프는 그대로."""
        await _catalog(db)
        base = await make_role(db, "base", permissions=["docs.read"])
        await make_role(db, "derived", inherits_from=["base"])

        with pytest.raises(ValidationError, match="Circular"):
            await role_graph.update_role(db, base.id, RoleUpdate(inherits_from=["derived"]))

        response = await role_graph.to_response(db, base)
        assert response.inherits_from == []


class TestRoleDefinition:
    """역할 정의 검증 테스트."""

    async def test_duplicate_name_fails(self, db: AsyncSession):
        await make_role(db, "reader")
        with pytest.raises(ValidationError):
            await make_role(db, "reader")

    async def test_inactive_permission_rejected(self, db: AsyncSession):
        from rbac_core.services.permission_catalog import permission_catalog

        await _catalog(db)
        await permission_catalog.deactivate(db, "docs.archive")
        with pytest.raises(ValidationError, match="inactive"):
            await make_role(db, "archivist", permissions=["docs.archive"])

    async def test_conflicting_permissions_rejected(self, db: AsyncSession):
        await make_permission(db, "payments.create", category="create")
        await make_permission(db, "payments.approve", category="approve", conflicts=["payments.create"])
        with pytest.raises(ValidationError, match="conflicting"):
            await make_role(db, "clerk", permissions=["payments.create", "payments.approve"])

    async def test_conflict_through_inheritance_rejected(self, db: AsyncSession):
        await make_permission(db, "payments.create", category="create")
        await make_permission(db, "payments.approve", category="approve", conflicts=["payments.create"])
        await make_role(db, "maker", permissions=["payments.create"])
        with pytest.raises(ValidationError, match="conflicting"):
            await make_role(db, "checker", permissions=["payments.approve"], inherits_from=["maker"])

    async def test_response_lists_names(self, db: AsyncSession):
        await _catalog(db)
        await make_role(db, "reader", permissions=["docs.read"])
        writer = await make_role(db, "writer", permissions=["docs.write", "docs.publish"], inherits_from=["reader"])

        response = await role_graph.to_response(db, writer)
        assert response.permissions == ["docs.publish", "docs.write"]
        assert response.inherits_from == ["reader"]
        assert response.stats.total_users == 0


class TestSystemRoles:
    """시스템 역할 보호 테스트."""

    async def test_system_role_cannot_be_updated(self, db: AsyncSession, catalog):
        role = await role_graph.get_role_by_name(db, "super_admin")
        with pytest.raises(AuthorizationError):
            await role_graph.update_role(db, role.id, RoleUpdate(display_name="Root"))

    async def test_system_role_cannot_be_deleted(self, db: AsyncSession, catalog):
        role = await role_graph.get_role_by_name(db, "super_admin")
        with pytest.raises(AuthorizationError):
            await role_graph.delete_role(db, role.id)


class TestDeleteRole:
    """역할 삭제 테스트."""

    async def test_delete_blocked_by_active_assignment(self, db: AsyncSession, member_user):
        role = await make_role(db, "temp")
        await grant(db, member_user, role)
        with pytest.raises(ConflictError):
            await role_graph.delete_role(db, role.id)

    async def test_delete_after_revoke(self, db: AsyncSession, member_user):
        role = await make_role(db, "temp")
        await grant(db, member_user, role)
        await assignment_store.revoke(db, member_user.id, role.id, None)

        await role_graph.delete_role(db, role.id)
        with pytest.raises(NotFoundError):
            await role_graph.get_role(db, role.id)

    async def test_delete_detaches_children(self, db: AsyncSession):
        await _catalog(db)
        parent = await make_role(db, "parent", permissions=["docs.read"])
        child = await make_role(db, "child", permissions=["docs.write"], inherits_from=["parent"])

        await role_graph.delete_role(db, parent.id)
        assert await role_graph.effective_permissions(db, child.id) == {"docs.write"}


class TestHierarchy:
    """레벨별 계층 조회 테스트."""

    async def test_hierarchy_groups_by_level(self, db: AsyncSession, catalog):
        levels = await role_graph.hierarchy(db)
        assert [entry.level for entry in levels] == [0, 1, 2, 3, 5, 6]
        assert [r.name for r in levels[0].roles] == ["super_admin"]

    async def test_stats_follow_assignments(self, db: AsyncSession, member_user):
        role = await make_role(db, "counted")
        await grant(db, member_user, role)
        assert role.total_users == 1
        assert role.active_users == 1

        await assignment_store.suspend(db, member_user.id, role.id, None)
        assert role.total_users == 1
        assert role.active_users == 0
